"""
Swiss Pairing: score-group pairing with rematch avoidance.

Order: points desc, Buchholz desc; equal teams keep the order they came in
(pass standings from swiss_standings.compute for a name tiebreak).

Bye: with an odd pool, the lowest-ranked team that has not had a bye sits
out (if everyone has had one, the lowest-ranked team). The bye pairing is
emitted last.

Matchups: the top remaining team meets the highest-ranked remaining team it
has not played. When every candidate is a rematch, it meets the next-best
candidate anyway and the pairing is flagged is_rematch. Rematches are
reported, not avoided at any cost.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Collection, List, Optional, Sequence

from bracketflow.services.match_state import (
    BYE,
    BYE_SCORE,
    MatchFormat,
    MatchResult,
    MatchState,
)
from bracketflow.services.progression_errors import PairingExhausted
from bracketflow.services.swiss_standings import SwissStanding, as_history

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SwissPairing:
    team_a: str
    team_b: Optional[str]  # None = bye
    is_bye: bool = False
    is_rematch: bool = False


def _ranked(standings: Sequence[SwissStanding]) -> List[SwissStanding]:
    # sorted() is stable: equal (points, buchholz) keep the caller's order
    return sorted(standings, key=lambda s: (-s.points, -s.buchholz))


def _pick_bye(ranked: List[SwissStanding], already_given: Collection[str]) -> SwissStanding:
    for standing in reversed(ranked):
        if standing.team not in already_given:
            return standing
    return ranked[-1]


def pair(
    standings: Sequence[SwissStanding],
    opponent_history=None,
    teams_already_given_bye: Collection[str] = (),
    strict: bool = False,
) -> List[SwissPairing]:
    """
    Build next-round pairings from current standings.

    Args:
        standings: one entry per team still in the pool
        opponent_history: OpponentHistory or {team: [opponents]}
        teams_already_given_bye: teams that must not get a second bye if avoidable
        strict: raise PairingExhausted instead of emitting a flagged rematch

    Returns:
        Pairings in board order, bye (if any) last. The input is not modified.
    """
    history = as_history(opponent_history)
    pool = _ranked(standings)

    bye: Optional[SwissPairing] = None
    if len(pool) % 2 == 1:
        sitting_out = _pick_bye(pool, set(teams_already_given_bye))
        pool = [s for s in pool if s is not sitting_out]
        bye = SwissPairing(team_a=sitting_out.team, team_b=None, is_bye=True)

    pairings: List[SwissPairing] = []
    while len(pool) >= 2:
        top = pool[0]
        rest = pool[1:]

        opponent = next((c for c in rest if not history.has_played(top.team, c.team)), None)
        rematch = False
        if opponent is None:
            if strict:
                raise PairingExhausted(
                    f"{top.team} has already played every remaining team: {[c.team for c in rest]}"
                )
            opponent = rest[0]
            rematch = True
            logger.warning("Forced rematch: %s vs %s (no unplayed opponent left)", top.team, opponent.team)

        pairings.append(SwissPairing(team_a=top.team, team_b=opponent.team, is_rematch=rematch))
        pool = [s for s in rest if s is not opponent]

    if bye is not None:
        pairings.append(bye)
    return pairings


def rematches(pairings: Sequence[SwissPairing]) -> List[SwissPairing]:
    return [p for p in pairings if p.is_rematch]


def swiss_match_code(round_number: int, board: int) -> str:
    return f"S{round_number}M{board + 1}"


def build_swiss_round(
    round_number: int,
    pairings: Sequence[SwissPairing],
    match_format=MatchFormat.BO3,
) -> List[MatchState]:
    """Turn pairings into unsaved matches; byes come back already resolved."""
    if round_number < 1:
        raise ValueError(f"round_number must be >= 1, got {round_number}")
    matches: List[MatchState] = []
    for board, p in enumerate(pairings):
        m = MatchState(
            id=swiss_match_code(round_number, board),
            team_a=p.team_a,
            team_b=p.team_b if p.team_b is not None else BYE,
            round=round_number,
            match_format=MatchFormat(match_format),
            is_bye=p.is_bye,
        )
        if p.is_bye:
            m.result = MatchResult(winner=p.team_a, score=BYE_SCORE)
        matches.append(m)
    return matches
