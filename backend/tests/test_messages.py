import asyncio
import json

import pytest

from conftest import FakeSocket, install_round, make_session
from engine.round_engine import RoundEngine
from engine.voting_engine import VotingEngine
from models.messages import CreateLobbyMessage, StartGameMessage, VoteMessage
from routers.ws_router import ConnectionManager, parse_message


class TestParseMessage:
    @pytest.mark.parametrize("raw", [
        "not json",
        "[1, 2, 3]",
        "42",
        None,
        json.dumps({"lobbyId": "ABC123"}),
        json.dumps({"type": "explode"}),
        json.dumps({"type": 7}),
        json.dumps({"type": "vote", "lobbyId": "ABC123"}),
        json.dumps({"type": "joinLobby", "name": "Ana"}),
    ])
    def test_noise_is_dropped(self, raw):
        assert parse_message(raw) is None

    def test_create_lobby_accepts_legacy_aliases(self):
        msg_type, msg = parse_message(json.dumps(
            {"type": "createLobby", "name": "  Ana  ", "themeIndex": 2, "impostors": 3}
        ))
        assert msg_type == "createLobby"
        assert isinstance(msg, CreateLobbyMessage)
        assert (msg.name, msg.topic_index, msg.impostor_count) == ("Ana", 2, 3)

    def test_non_numeric_settings_are_treated_as_absent(self):
        _, msg = parse_message(json.dumps(
            {"type": "startGame", "lobbyId": "abc123", "topicIndex": "lots", "impostorCount": True}
        ))
        assert isinstance(msg, StartGameMessage)
        assert msg.lobby_id == "ABC123"
        assert msg.topic_index is None
        assert msg.impostor_count is None

    def test_negative_settings_are_clamped(self):
        _, msg = parse_message(json.dumps(
            {"type": "updateSettings", "lobbyId": "ABC123", "topicIndex": -4, "impostorCount": -1}
        ))
        assert (msg.topic_index, msg.impostor_count) == (0, 1)

    def test_nested_data_envelope(self):
        _, msg = parse_message(json.dumps(
            {"type": "vote", "data": {"lobbyId": "ABC123", "targetId": "XYZ"}}
        ))
        assert isinstance(msg, VoteMessage)
        assert msg.target_id == "XYZ"

    def test_blank_name_becomes_none(self):
        _, msg = parse_message(json.dumps({"type": "createLobby", "name": "   "}))
        assert msg.name is None

    def test_long_names_are_truncated(self):
        _, msg = parse_message(json.dumps({"type": "joinLobby", "lobbyId": "A", "name": "x" * 100}))
        assert len(msg.name) == 32


class TestConnectionManager:
    def test_broadcast_skips_closed_and_failing_sockets(self):
        session = make_session("abcd")
        session.players["b"].connection = FakeSocket(connected=False)
        session.players["c"].connection = FakeSocket(fail=True)
        asyncio.run(ConnectionManager().broadcast(session, {"type": "lobbyUpdate"}))
        assert session.players["a"].connection.sent == [{"type": "lobbyUpdate"}]
        assert session.players["b"].connection.sent == []
        assert session.players["d"].connection.sent == [{"type": "lobbyUpdate"}]

    def test_send_to_reaches_only_one_member(self):
        session = make_session("abc")
        asyncio.run(ConnectionManager().send_to(session, "b", {"type": "x"}))
        assert [bool(p.connection.sent) for p in session.players.values()] == [False, True, False]

    def test_send_to_unknown_member_is_silent(self):
        session = make_session("abc")
        asyncio.run(ConnectionManager().send_to(session, "zz", {"type": "x"}))

    def test_round_start_sends_private_cards_then_public_summary(self, catalog, rng):
        session = make_session("abc")
        assignment = RoundEngine(catalog, rng=rng).start_round(session, "a")
        asyncio.run(ConnectionManager().broadcast_round_start(session, assignment))
        for pid, player in session.players.items():
            private, public = player.connection.sent
            assert private["type"] == "roundAssigned"
            assert private["isImpostor"] == (pid in assignment.round.impostor_ids)
            assert private["theme"] == "Animales"
            assert ("secretWord" in private) != private["isImpostor"]
            assert public["type"] == "roundStarted"
            assert public["impostorCount"] == 1
            assert public["alive"] == [o["id"] for o in public["order"]]

    def test_elimination_then_voting_reset(self):
        session = make_session("abcd")
        install_round(session, impostors="a")
        engine = VotingEngine()
        for voter in "abcd":
            outcome = engine.cast_vote(session, voter, "d" if voter != "d" else "a")
        asyncio.run(ConnectionManager().broadcast_elimination(session, outcome.elimination))
        elimination, reset = session.players["a"].connection.sent
        assert elimination["type"] == "elimination"
        assert elimination["eliminatedId"] == "d"
        assert elimination["votes"] == 3
        assert elimination["impostorsAlive"] == 1
        assert reset == {
            "type": "votingReset",
            "aliveIds": ["a", "b", "c"],
            "order": elimination["order"],
        }
