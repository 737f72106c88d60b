"""
In-process match shapes shared by the bracket and Swiss engines.

A MatchState is one node of the advancement graph. Engines receive a
snapshot of these (keyed by id), never touch storage, and hand back copies.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Iterable, Mapping, Optional

TBD = "TBD"
BYE = "BYE"
BYE_SCORE = "BYE"

SLOT_A = "team_a"
SLOT_B = "team_b"
SLOTS = (SLOT_A, SLOT_B)


class BracketSide(str, Enum):
    winners = "winners"
    losers = "losers"
    grand_final = "grand_final"


class EliminationMode(str, Enum):
    single = "single"
    double = "double"


class MatchFormat(str, Enum):
    BO1 = "BO1"
    BO3 = "BO3"
    BO5 = "BO5"
    BO7 = "BO7"


@dataclass(frozen=True)
class MatchResult:
    winner: str
    score: str


@dataclass
class MatchState:
    id: str
    team_a: str = TBD
    team_b: str = TBD
    round: int = 1
    bracket_side: Optional[BracketSide] = None
    bracket_position: Optional[int] = None
    next_match_id: Optional[str] = None
    next_match_slot: Optional[str] = None  # None = first open slot
    next_loser_match_id: Optional[str] = None
    next_loser_match_slot: Optional[str] = None
    is_bye: bool = False
    result: Optional[MatchResult] = None
    match_format: MatchFormat = MatchFormat.BO3

    def copy(self) -> "MatchState":
        return replace(self)

    def team_in(self, slot: str) -> str:
        if slot not in SLOTS:
            raise ValueError(f"Unknown slot: {slot}")
        return getattr(self, slot)

    def set_team(self, slot: str, team: str) -> None:
        if slot not in SLOTS:
            raise ValueError(f"Unknown slot: {slot}")
        setattr(self, slot, team)
        if team == BYE:
            self.is_bye = True

    def slot_of(self, team: str) -> Optional[str]:
        """Slot currently holding *team*, or None."""
        if self.team_a == team:
            return SLOT_A
        if self.team_b == team:
            return SLOT_B
        return None

    def opponent_of(self, team: str) -> str:
        return self.team_b if self.team_a == team else self.team_a

    @property
    def has_result(self) -> bool:
        return self.result is not None

    @property
    def winner(self) -> Optional[str]:
        return self.result.winner if self.result else None

    @property
    def loser(self) -> Optional[str]:
        if self.result is None:
            return None
        return self.opponent_of(self.result.winner)

    @property
    def participants_known(self) -> bool:
        return TBD not in (self.team_a, self.team_b)


def is_real_team(name: Optional[str]) -> bool:
    """True for an actual team name (not a sentinel, not empty)."""
    return bool(name) and name not in (TBD, BYE)


def index_matches(matches: Iterable[MatchState]) -> Dict[str, MatchState]:
    """Key a match list by id, rejecting duplicate ids."""
    by_id: Dict[str, MatchState] = {}
    for m in matches:
        if m.id in by_id:
            raise ValueError(f"Duplicate match id in snapshot: {m.id}")
        by_id[m.id] = m
    return by_id


def as_index(matches) -> Mapping[str, MatchState]:
    if isinstance(matches, Mapping):
        return matches
    return index_matches(matches)
