"""
Round Engine: role assignment and speaking order. Pure Python, no I/O.

Called by the WebSocket hub when the host sends startGame. Produces the new
RoundState (installed on the session) plus one private role card per player;
the hub is responsible for delivering the cards and the public broadcast.
"""
import logging
import random
from dataclasses import dataclass
from typing import List, Optional

from engine.errors import InsufficientPlayers, NotHost
from models.game import LobbySession, RoundState, SpeakingSlot, VotingRound
from services.topic_catalog import Topic, TopicCatalog

logger = logging.getLogger(__name__)

IMPOSTOR_NOTICE = "Eres el impostor. Finge que sabes la palabra."
IMPOSTOR_HINT = "Eres el impostor. Pista: {hint}"
CIVILIAN_WORD = "Tu palabra es: {secret}"


@dataclass
class RoleCard:
    player_id: str
    is_impostor: bool
    word: str                   # text shown to the player
    secret_word: Optional[str]  # None when withheld from an impostor


@dataclass
class RoundAssignment:
    round: RoundState
    topic: Topic
    impostor_count: int
    cards: List[RoleCard]


def clamp_impostor_count(requested: int, n_players: int) -> int:
    """At least one impostor and at least one civilian."""
    return max(1, min(requested, n_players - 1))


class RoundEngine:

    MIN_PLAYERS = 3

    def __init__(
        self,
        catalog: TopicCatalog,
        min_players: int = MIN_PLAYERS,
        reveal_secret_to_impostors: bool = False,
        rng: Optional[random.Random] = None,
    ):
        self.catalog = catalog
        self.min_players = min_players
        self.reveal_secret_to_impostors = reveal_secret_to_impostors
        self._rng = rng or random.Random()

    def start_round(
        self,
        session: LobbySession,
        requester_id: str,
        topic_index: Optional[int] = None,
        impostor_count: Optional[int] = None,
    ) -> RoundAssignment:
        """
        Assign roles for a new round and install it on the session.

        Missing parameters fall back to the lobby settings, which are left
        untouched. Any previous round is replaced wholesale.

        Raises NotHost if the requester is not the host, InsufficientPlayers
        if fewer than `min_players` are in the lobby.
        """
        if not session.is_host(requester_id):
            raise NotHost()

        players = list(session.players.values())
        if len(players) < self.min_players:
            raise InsufficientPlayers(f"Necesitas al menos {self.min_players} jugadores.")

        if impostor_count is None:
            impostor_count = session.settings.impostor_count
        if topic_index is None:
            topic_index = session.settings.topic_index
        n_impostors = clamp_impostor_count(impostor_count, len(players))
        topic = self.catalog.get(topic_index)
        entry = self._rng.choice(topic.entries)

        # Two independent permutations: position in the speaking order must
        # say nothing about who the impostors are.
        pick_list = list(players)
        self._rng.shuffle(pick_list)
        order_list = list(players)
        self._rng.shuffle(order_list)

        impostor_ids = {p.id for p in pick_list[:n_impostors]}
        order = [SpeakingSlot(id=p.id, name=p.name) for p in order_list]

        round_state = RoundState(
            topic_name=topic.name,
            secret=entry.secret,
            hint=entry.hint,
            impostor_ids=impostor_ids,
            speaking_order=order,
            alive_ids={slot.id for slot in order},
            voting=VotingRound(),
        )
        session.round = round_state

        cards = [self._role_card(p.id, p.id in impostor_ids, topic, entry.secret, entry.hint) for p in players]

        logger.info(
            "[%s] Round started: topic=%s, %d players, %d impostor(s)",
            session.code, topic.name, len(players), n_impostors,
        )
        return RoundAssignment(
            round=round_state,
            topic=topic,
            impostor_count=n_impostors,
            cards=cards,
        )

    def _role_card(
        self, player_id: str, is_impostor: bool, topic: Topic, secret: str, hint: str
    ) -> RoleCard:
        if not is_impostor:
            return RoleCard(player_id, False, CIVILIAN_WORD.format(secret=secret), secret)
        # Only the aggregate topic hides its category, so only there does the hint help
        word = IMPOSTOR_HINT.format(hint=hint) if topic.is_aggregate else IMPOSTOR_NOTICE
        return RoleCard(
            player_id,
            True,
            word,
            secret if self.reveal_secret_to_impostors else None,
        )
