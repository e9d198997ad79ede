"""WebSocket front end for the card room engine."""

from .server import CardRoomServer, ServerConfig

__all__ = ["CardRoomServer", "ServerConfig"]
