"""
Voting Engine: ballots, tally reconciliation, elimination and win checks.

State machine per round:
    NoRound → VotingOpen → (VotingOpen | civilians win | impostor wins)

VotingOpen re-enters itself after a non-terminal elimination with a fresh,
empty VotingRound scoped to the shrunken alive set. A voting round closes the
moment every alive player holds a ballot; elimination is resolved inside the
same cast_vote call.

Pure Python, no I/O: callers hold the lobby lock and broadcast the outcome.
"""
import logging
import random
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from engine.errors import InvalidTarget, PlayerEliminated
from models.game import GameResult, LobbySession, RoundState, VotingRound

logger = logging.getLogger(__name__)


@dataclass
class Elimination:
    eliminated_id: str
    eliminated_name: str
    votes: int
    alive_ids: List[str]
    order: List[Dict[str, str]]
    impostors_alive: int
    result: Optional[GameResult]  # None → a fresh voting round was opened


@dataclass
class VoteOutcome:
    votes: List[Dict[str, object]]  # [{id, name, votes}] in tally order
    voted_count: int
    total_voters: int
    elimination: Optional[Elimination] = None


class VotingEngine:

    TIE_BREAKS = ("first", "random")

    def __init__(self, tie_break: str = "first", rng: Optional[random.Random] = None):
        if tie_break not in self.TIE_BREAKS:
            raise ValueError(f"Unknown tie_break '{tie_break}' (expected one of {self.TIE_BREAKS})")
        self.tie_break = tie_break
        self._rng = rng or random.Random()

    # ── Ballots ───────────────────────────────────────────────────────────────

    def cast_vote(
        self, session: LobbySession, voter_id: str, target_id: str
    ) -> Optional[VoteOutcome]:
        """
        Record (or move) a ballot.

        Returns None when no voting round is open. Raises PlayerEliminated if
        the voter is not alive and InvalidTarget if the target is not alive.
        """
        round_state = session.round
        if round_state is None or not round_state.voting.is_open:
            return None
        if voter_id not in round_state.alive_ids:
            raise PlayerEliminated()
        if target_id not in round_state.alive_ids:
            raise InvalidTarget()

        voting = round_state.voting
        previous = voting.ballots.get(voter_id)
        if previous is not None:
            voting.tally[previous] = max(0, voting.tally.get(previous, 0) - 1)
        voting.ballots[voter_id] = target_id
        voting.tally[target_id] = voting.tally.get(target_id, 0) + 1

        outcome = self._snapshot(round_state)
        if voting.voted_count >= len(round_state.alive_ids):
            outcome.elimination = self._resolve(session)
        return outcome

    def cancel_vote(self, session: LobbySession, voter_id: str) -> Optional[VoteOutcome]:
        """Withdraw the voter's ballot. No-op (None) if there is none to withdraw."""
        round_state = session.round
        if round_state is None or not round_state.voting.is_open:
            return None
        voting = round_state.voting
        target = voting.ballots.pop(voter_id, None)
        if target is None:
            return None
        voting.tally[target] = max(0, voting.tally.get(target, 0) - 1)
        return self._snapshot(round_state)

    def _snapshot(self, round_state: RoundState) -> VoteOutcome:
        voting = round_state.voting
        return VoteOutcome(
            votes=[
                {"id": target, "name": round_state.name_of(target), "votes": count}
                for target, count in voting.tally.items()
            ],
            voted_count=voting.voted_count,
            total_voters=len(round_state.alive_ids),
        )

    # ── Elimination ───────────────────────────────────────────────────────────

    def pick_eliminated(self, tally: Dict[str, int]) -> Tuple[str, int]:
        """
        Most-voted target and its count.

        Ties: "first" keeps the earliest target in tally insertion order,
        "random" picks uniformly among the leaders.
        """
        max_votes = max(tally.values())
        leaders = [target for target, count in tally.items() if count == max_votes]
        if len(leaders) > 1 and self.tie_break == "random":
            return self._rng.choice(leaders), max_votes
        return leaders[0], max_votes

    def _resolve(self, session: LobbySession) -> Elimination:
        round_state = session.round
        voting = round_state.voting
        voting.is_open = False

        eliminated, max_votes = self.pick_eliminated(voting.tally)
        round_state.alive_ids.discard(eliminated)
        impostors_alive = round_state.impostors_alive()
        logger.info(
            "[%s] %s eliminated with %d vote(s); %d alive, %d impostor(s) alive",
            session.code, eliminated, max_votes, len(round_state.alive_ids), impostors_alive,
        )

        result: Optional[GameResult] = None
        if impostors_alive == 0:
            result = GameResult.CIVILIANS
        elif len(round_state.alive_ids) <= 2:
            # Impostors can no longer be outvoted
            result = GameResult.IMPOSTOR

        if result is not None:
            round_state.result = result
            logger.info("[%s] Game over: %s win", session.code, result.value)
        else:
            round_state.voting = VotingRound()

        return Elimination(
            eliminated_id=eliminated,
            eliminated_name=round_state.name_of(eliminated),
            votes=max_votes,
            alive_ids=round_state.ordered_alive_ids(),
            order=round_state.alive_order(),
            impostors_alive=impostors_alive,
            result=result,
        )
