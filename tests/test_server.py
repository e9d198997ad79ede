import asyncio
import json
import random
from http import HTTPStatus

from cardcore.rooms import BSRoomManager, HoldemRoomManager
from cardserver.server import CardRoomServer, ClientSession, ServerConfig


# Fake sockets so we can exercise async paths without opening real connections.
class DummyWebSocket:
    def __init__(self) -> None:
        self.sent: list[str] = []
        self.closed = False

    async def send(self, message: str) -> None:
        self.sent.append(message)

    async def close(self, *args, **kwargs) -> None:
        self.closed = True

    def messages(self, msg_type: str) -> list[dict]:
        decoded = [json.loads(raw) for raw in self.sent]
        return [msg for msg in decoded if msg["type"] == msg_type]

    def last(self, msg_type: str) -> dict:
        found = self.messages(msg_type)
        assert found, f"no {msg_type} message in {self.sent}"
        return found[-1]


def setup_server(num_clients: int = 2) -> tuple[CardRoomServer, list[ClientSession], list[DummyWebSocket]]:
    server = CardRoomServer(
        ServerConfig(holdem_start_delay=0, next_hand_delay=0, reveal_delay=0),
        holdem=HoldemRoomManager(rng=random.Random(3)),
        bspoker=BSRoomManager(rng=random.Random(3)),
    )
    sessions: list[ClientSession] = []
    sockets: list[DummyWebSocket] = []
    for idx in range(num_clients):
        websocket = DummyWebSocket()
        session = ClientSession(player_id=f"player{idx}", websocket=websocket)
        server.sessions[session.player_id] = session
        sessions.append(session)
        sockets.append(websocket)
    return server, sessions, sockets


def test_create_room_acknowledges_with_req_id():
    server, sessions, sockets = setup_server(1)

    asyncio.run(server._dispatch(sessions[0], {"type": "poker:create-room", "req_id": 7, "room_name": "Home"}))

    ack = sockets[0].last("ack")
    assert ack["req_id"] == 7
    assert ack["success"] is True
    assert ack["room"]["config"]["room_id"].startswith("PUB-")
    assert sessions[0].holdem_room == ack["room"]["config"]["room_id"]
    assert ack["v"] == 1


def test_errors_only_reach_the_sender():
    server, sessions, sockets = setup_server(2)

    asyncio.run(server._dispatch(sessions[0], {"type": "poker:join-room", "room_id": "PUB-NONE"}))
    assert sockets[0].last("poker:error")["error"] == "Room not found"
    assert sockets[1].sent == []

    asyncio.run(server._dispatch(sessions[0], {"type": "bspoker:action", "req_id": "x", "action": {"type": "bullshit"}}))
    ack = sockets[0].last("ack")
    assert ack["success"] is False
    assert ack["error"] == "Not in a room"


def test_unknown_message_type_is_rejected():
    server, sessions, sockets = setup_server(1)
    asyncio.run(server._dispatch(sessions[0], {"type": "poker:teleport"}))
    error = sockets[0].last("error")
    assert error["code"] == "UNKNOWN_TYPE"


def test_second_player_triggers_auto_start_with_private_views():
    server, sessions, sockets = setup_server(2)

    async def scenario():
        await server._dispatch(sessions[0], {"type": "poker:create-room", "room_name": "Home"})
        room_id = sessions[0].holdem_room
        await server._dispatch(sessions[1], {"type": "poker:join-room", "room_id": room_id, "player_name": "Bo"})
        await server.drain_timers()
        return room_id

    room_id = asyncio.run(scenario())
    room = server.holdem.get_room(room_id)
    assert room.game_state is not None

    for session, websocket in zip(sessions, sockets):
        state = websocket.last("poker:game-state")["state"]
        assert state["pot"] == 30
        for player in state["players"]:
            if player["id"] == session.player_id:
                assert len(player["hole_cards"]) == 2
            else:
                assert player["hole_cards"] == []

    joined = sockets[1].last("poker:room-joined")["room"]
    assert [p["name"] for p in joined["players"]][1] == "Bo"


def test_fold_broadcasts_round_end_and_deals_next_hand():
    server, sessions, sockets = setup_server(2)

    async def scenario():
        await server._dispatch(sessions[0], {"type": "poker:create-room", "room_name": "Home"})
        room_id = sessions[0].holdem_room
        await server._dispatch(sessions[1], {"type": "poker:join-room", "room_id": room_id})
        await server.drain_timers()
        actor = server.holdem.get_room(room_id).current_player()
        session = next(s for s in sessions if s.player_id == actor.id)
        await server._dispatch(session, {"type": "poker:action", "action": {"type": "fold"}})
        await server.drain_timers()
        return room_id

    room_id = asyncio.run(scenario())

    for websocket in sockets:
        winners = websocket.last("poker:round-end")["winners"]
        assert winners[0]["amount"] == 30
        assert websocket.messages("poker:player-action")
    state = server.holdem.get_room(room_id).game_state
    assert state.winners is None
    assert state.pot == 30


def test_out_of_turn_action_is_reported():
    server, sessions, sockets = setup_server(2)

    async def scenario():
        await server._dispatch(sessions[0], {"type": "poker:create-room", "room_name": "Home"})
        room_id = sessions[0].holdem_room
        await server._dispatch(sessions[1], {"type": "poker:join-room", "room_id": room_id})
        await server.drain_timers()
        actor = server.holdem.get_room(room_id).current_player()
        idle = next(s for s in sessions if s.player_id != actor.id)
        await server._dispatch(idle, {"type": "poker:action", "action": {"type": "check"}})
        return idle

    idle = asyncio.run(scenario())
    websocket = sockets[sessions.index(idle)]
    assert websocket.last("poker:error")["error"] == "Not your turn"


def test_bs_round_flow_reveals_after_call():
    server, sessions, sockets = setup_server(2)

    async def scenario():
        await server._dispatch(sessions[0], {"type": "bspoker:create-room", "room_name": "Bluff"})
        room_id = sessions[0].bs_room
        await server._dispatch(sessions[1], {"type": "bspoker:join-room", "room_id": room_id})
        await server._dispatch(sessions[0], {"type": "bspoker:start-game"})
        await server._dispatch(
            sessions[1],
            {"type": "bspoker:action", "action": {"type": "guess", "guess": {"type": "pair", "rank": "A"}}},
        )
        await server._dispatch(sessions[0], {"type": "bspoker:action", "action": {"type": "bullshit"}})
        await server.drain_timers()
        return room_id

    room_id = asyncio.run(scenario())
    room = server.bspoker.get_room(room_id)

    for websocket in sockets:
        result = websocket.last("bspoker:round-end")["result"]
        assert result["caller_id"] == "player0"
        assert result["guesser_id"] == "player1"
        assert len(result["all_cards"]) == 4
        guess_state = websocket.messages("bspoker:game-state")[1]["state"]
        assert guess_state["all_cards"] == []
    assert room.game_state.phase.value == "round-end"

    asyncio.run(server._dispatch(sessions[0], {"type": "bspoker:next-round", "req_id": 1}))
    assert sockets[0].last("ack")["success"] is True
    assert room.game_state.round_number == 2


def test_disconnect_removes_player_and_empty_room():
    server, sessions, sockets = setup_server(2)

    async def scenario():
        await server._dispatch(sessions[0], {"type": "bspoker:create-room", "room_name": "Bluff"})
        room_id = sessions[0].bs_room
        await server._dispatch(sessions[1], {"type": "bspoker:join-room", "room_id": room_id})
        await server._disconnect(sessions[1])
        return room_id

    room_id = asyncio.run(scenario())
    assert "player1" not in server.sessions
    assert sockets[0].last("bspoker:player-left")["player_id"] == "player1"
    assert [p.id for p in server.bspoker.get_room(room_id).players] == ["player0"]

    asyncio.run(server._disconnect(sessions[0]))
    assert server.bspoker.get_room(room_id) is None


def test_list_rooms_reply_without_req_id():
    server, sessions, sockets = setup_server(1)
    asyncio.run(server._dispatch(sessions[0], {"type": "poker:create-room", "room_name": "Home"}))
    asyncio.run(server._dispatch(sessions[0], {"type": "poker:list-rooms"}))
    rooms = sockets[0].last("poker:room-list")["rooms"]
    assert len(rooms) == 1
    assert rooms[0]["current_players"] == 1


def test_health_check_reports_counts():
    server, sessions, _ = setup_server(1)
    asyncio.run(server._dispatch(sessions[0], {"type": "poker:create-room", "room_name": "Home"}))

    status, headers, body = asyncio.run(server._process_request("/health", {}))
    assert status == HTTPStatus.OK
    payload = json.loads(body)
    assert payload["poker_rooms"] == 1
    assert payload["poker_players"] == 1
    assert payload["bspoker_rooms"] == 0

    assert asyncio.run(server._process_request("/health", {"Upgrade": "websocket"})) is None
    status, _, _ = asyncio.run(server._process_request("/nope", {}))
    assert status == HTTPStatus.NOT_FOUND


async def _play_current_turn(server, sessions, room_id, action_type=None):
    room = server.holdem.get_room(room_id)
    actor = room.current_player()
    if action_type is None:
        action_type = "check" if actor.current_bet >= room.game_state.current_bet else "call"
    session = next(s for s in sessions if s.player_id == actor.id)
    await server._dispatch(session, {"type": "poker:action", "action": {"type": action_type}})
    return session


def test_leaving_last_pending_seat_settles_showdown_and_deals_next_hand():
    server, sessions, sockets = setup_server(3)

    async def scenario():
        await server._dispatch(sessions[0], {"type": "poker:create-room", "room_name": "Home"})
        room_id = sessions[0].holdem_room
        for session in sessions[1:]:
            await server._dispatch(session, {"type": "poker:join-room", "room_id": room_id})
        await server.drain_timers()
        room = server.holdem.get_room(room_id)
        while room.game_state.phase.value != "river":
            await _play_current_turn(server, sessions, room_id)
        await _play_current_turn(server, sessions, room_id, "check")
        await _play_current_turn(server, sessions, room_id, "check")
        leaver = next(s for s in sessions if s.player_id == room.current_player().id)
        await server._dispatch(leaver, {"type": "poker:leave-room"})
        await server.drain_timers()
        return room_id, leaver

    room_id, leaver = asyncio.run(scenario())
    room = server.holdem.get_room(room_id)

    for session, websocket in zip(sessions, sockets):
        if session is leaver:
            continue
        winners = websocket.last("poker:round-end")["winners"]
        assert sum(w["amount"] for w in winners) == 60
    assert len(room.players) == 2
    assert room.game_state.winners is None
    assert room.game_state.phase.value == "preflop"


def test_forfeit_with_seated_joiner_announces_winner_and_deals_joiner_in():
    server, sessions, sockets = setup_server(3)

    async def scenario():
        await server._dispatch(sessions[0], {"type": "poker:create-room", "room_name": "Home"})
        room_id = sessions[0].holdem_room
        await server._dispatch(sessions[1], {"type": "poker:join-room", "room_id": room_id})
        await server.drain_timers()
        await server._dispatch(sessions[2], {"type": "poker:join-room", "room_id": room_id})
        room = server.holdem.get_room(room_id)
        leaver = next(s for s in sessions if s.player_id == room.current_player().id)
        await server._dispatch(leaver, {"type": "poker:leave-room"})
        await server.drain_timers()
        return room_id, leaver

    room_id, leaver = asyncio.run(scenario())
    room = server.holdem.get_room(room_id)

    winners = sockets[2].last("poker:round-end")["winners"]
    assert len(winners) == 1
    assert winners[0]["amount"] == 30
    assert winners[0]["player_id"] != leaver.player_id
    assert room.status.value == "playing"
    assert room.game_state.winners is None
    joiner = next(p for p in room.players if p.id == "player2")
    assert not joiner.folded
    assert len(joiner.hole_cards) == 2


def test_mid_hand_joiner_waits_for_next_hand():
    server, sessions, sockets = setup_server(3)

    async def scenario():
        await server._dispatch(sessions[0], {"type": "poker:create-room", "room_name": "Home"})
        room_id = sessions[0].holdem_room
        await server._dispatch(sessions[1], {"type": "poker:join-room", "room_id": room_id})
        await server.drain_timers()
        await server._dispatch(sessions[2], {"type": "poker:join-room", "room_id": room_id})
        return room_id

    room_id = asyncio.run(scenario())
    room = server.holdem.get_room(room_id)

    joined = {p["id"]: p for p in sockets[2].last("poker:room-joined")["room"]["players"]}
    assert joined["player2"]["folded"] is True
    assert joined["player2"]["hole_cards"] == []
    assert joined["player0"]["hole_cards"] == []
    assert "player2" not in room.game_state.pending
