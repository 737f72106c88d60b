"""
Swiss standings: records, Buchholz and qualification status.

Standings are a pure projection of the match set: recompute them from the
full match history on every query. Nothing here is persisted.

Scoring:
  win  = 1 point (a bye counts as a win)
  loss = 0
  Buchholz = sum of the current points of every distinct opponent faced.
             A bye is not an opponent, and the points an opponent earned
             from its own byes are left out of what it contributes.

Display order: points desc, Buchholz desc, team name asc.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from bracketflow.services.match_state import BYE, MatchState, is_real_team


class SwissStatus(str, Enum):
    active = "active"
    qualified = "qualified"
    eliminated = "eliminated"


class MatchStake(str, Enum):
    qualification = "qualification"
    elimination = "elimination"
    neutral = "neutral"


class OpponentHistory:
    """Symmetric, ordered, read-only record of who has faced whom.

    Updating is an explicit step that returns a new history; pairing only
    ever reads one.
    """

    def __init__(self, adjacency: Optional[Mapping[str, Sequence[str]]] = None):
        self._adj: Dict[str, Tuple[str, ...]] = {}
        if adjacency:
            pending: List[Tuple[str, str]] = []
            for team, opponents in adjacency.items():
                for opp in opponents:
                    pending.append((team, opp))
            self._adj = _link(self._adj, pending)

    @classmethod
    def from_matches(cls, matches: Iterable[MatchState]) -> "OpponentHistory":
        """Opponents from every match with two real teams (byes excluded)."""
        history = cls()
        history._adj = _link({}, [(m.team_a, m.team_b) for m in matches if _is_contest(m)])
        return history

    def record(self, pairs: Iterable) -> "OpponentHistory":
        """New history with *pairs* added; accepts (a, b) tuples or objects with team_a/team_b."""
        edges: List[Tuple[str, str]] = []
        for pair in pairs:
            if isinstance(pair, tuple):
                a, b = pair
            else:
                a, b = pair.team_a, pair.team_b
            edges.append((a, b))
        updated = OpponentHistory()
        updated._adj = _link(self._adj, edges)
        return updated

    def opponents(self, team: str) -> Tuple[str, ...]:
        return self._adj.get(team, ())

    def has_played(self, team_a: str, team_b: str) -> bool:
        return team_b in self._adj.get(team_a, ())

    def as_dict(self) -> Dict[str, List[str]]:
        return {team: list(opps) for team, opps in self._adj.items()}

    def __contains__(self, team: str) -> bool:
        return team in self._adj

    def __eq__(self, other) -> bool:
        if not isinstance(other, OpponentHistory):
            return NotImplemented
        return self._adj == other._adj

    def __repr__(self) -> str:
        return f"OpponentHistory({self.as_dict()!r})"


def _link(base: Mapping[str, Tuple[str, ...]], edges: Iterable[Tuple[str, str]]) -> Dict[str, Tuple[str, ...]]:
    adj: Dict[str, List[str]] = {team: list(opps) for team, opps in base.items()}
    for a, b in edges:
        if not is_real_team(a) or not is_real_team(b) or a == b:
            continue
        for x, y in ((a, b), (b, a)):
            opps = adj.setdefault(x, [])
            if y not in opps:
                opps.append(y)
    return {team: tuple(opps) for team, opps in adj.items()}


def as_history(history) -> OpponentHistory:
    if history is None:
        return OpponentHistory()
    if isinstance(history, OpponentHistory):
        return history
    return OpponentHistory(history)


@dataclass
class SwissStanding:
    team: str
    wins: int = 0
    losses: int = 0
    points: int = 0
    buchholz: int = 0
    byes: int = 0
    opponent_history: Tuple[str, ...] = field(default_factory=tuple)
    status: SwissStatus = SwissStatus.active

    @property
    def record(self) -> str:
        return f"{self.wins}-{self.losses}"


@dataclass
class RecordBucketEntry:
    team: str
    wins: int
    losses: int
    status: SwissStatus
    next_match_stake: MatchStake


@dataclass
class RecordBucket:
    record: str
    teams: List[RecordBucketEntry]
    is_qualified: bool
    is_eliminated: bool


def _is_contest(match: MatchState) -> bool:
    return not match.is_bye and is_real_team(match.team_a) and is_real_team(match.team_b)


def _is_bye_match(match: MatchState) -> bool:
    return match.is_bye or match.team_b == BYE or match.team_a == BYE


def team_status(
    wins: int,
    losses: int,
    qualify_at: Optional[int],
    eliminate_at: Optional[int],
) -> SwissStatus:
    if qualify_at is not None and wins >= qualify_at:
        return SwissStatus.qualified
    if eliminate_at is not None and losses >= eliminate_at:
        return SwissStatus.eliminated
    return SwissStatus.active


def next_match_stake(wins: int, losses: int, qualify_at: int, eliminate_at: int) -> MatchStake:
    if wins == qualify_at - 1:
        return MatchStake.qualification
    if losses == eliminate_at - 1:
        return MatchStake.elimination
    return MatchStake.neutral


def standings_sort_key(standing: SwissStanding):
    return (-standing.points, -standing.buchholz, standing.team)


def compute(
    teams: Sequence[str],
    matches: Iterable[MatchState],
    opponent_history=None,
    qualify_at: Optional[int] = None,
    eliminate_at: Optional[int] = None,
) -> List[SwissStanding]:
    """
    Aggregate *matches* into ranked standings for *teams*.

    Args:
        teams: every team of the stage (teams without matches still appear)
        matches: the stage's full match history; unplayed matches are ignored
            for records
        opponent_history: OpponentHistory or {team: [opponents]}; derived from
            *matches* when omitted
        qualify_at: wins that qualify a team (status only computed when given)
        eliminate_at: losses that eliminate a team

    Matches involving names outside *teams* only count for the known side.
    """
    matches = list(matches)
    history = as_history(opponent_history) if opponent_history is not None else OpponentHistory.from_matches(matches)

    by_team: Dict[str, SwissStanding] = {}
    for team in teams:
        if team not in by_team:
            by_team[team] = SwissStanding(team=team, opponent_history=history.opponents(team))

    for match in matches:
        if match.result is None:
            continue
        winner = match.result.winner
        if _is_bye_match(match):
            standing = by_team.get(winner)
            if standing is not None and is_real_team(winner):
                standing.wins += 1
                standing.points += 1
                standing.byes += 1
            continue
        loser = match.opponent_of(winner)
        if winner in by_team:
            by_team[winner].wins += 1
            by_team[winner].points += 1
        if loser in by_team:
            by_team[loser].losses += 1

    for standing in by_team.values():
        standing.buchholz = sum(
            by_team[opp].points - by_team[opp].byes for opp in set(standing.opponent_history) if opp in by_team
        )
        standing.status = team_status(standing.wins, standing.losses, qualify_at, eliminate_at)

    return sorted(by_team.values(), key=standings_sort_key)


def teams_with_bye(matches: Iterable[MatchState]) -> Set[str]:
    """Teams that have already received a bye."""
    given: Set[str] = set()
    for match in matches:
        if not _is_bye_match(match):
            continue
        for team in (match.team_a, match.team_b):
            if is_real_team(team):
                given.add(team)
    return given


def is_round_complete(matches: Iterable[MatchState], round_number: int) -> bool:
    round_matches = [m for m in matches if m.round == round_number]
    if not round_matches:
        return False
    return all(m.result is not None for m in round_matches)


def recommended_swiss_rounds(team_count: int) -> int:
    """ceil(log2(n)) rounds separate a clear winner."""
    if team_count <= 1:
        return 0
    if team_count == 2:
        return 1
    return math.ceil(math.log2(team_count))


def group_by_record(
    standings: Iterable[SwissStanding],
    qualify_at: int,
    eliminate_at: int,
) -> List[RecordBucket]:
    """Bucket teams by W-L record: wins desc, then losses asc."""
    grouped: Dict[Tuple[int, int], List[RecordBucketEntry]] = {}
    for s in standings:
        grouped.setdefault((s.wins, s.losses), []).append(
            RecordBucketEntry(
                team=s.team,
                wins=s.wins,
                losses=s.losses,
                status=s.status,
                next_match_stake=next_match_stake(s.wins, s.losses, qualify_at, eliminate_at),
            )
        )

    buckets: List[RecordBucket] = []
    for (wins, losses) in sorted(grouped, key=lambda wl: (-wl[0], wl[1])):
        entries = grouped[(wins, losses)]
        buckets.append(
            RecordBucket(
                record=f"{wins}-{losses}",
                teams=entries,
                is_qualified=wins >= qualify_at,
                is_eliminated=all(e.status == SwissStatus.eliminated for e in entries),
            )
        )
    return buckets
