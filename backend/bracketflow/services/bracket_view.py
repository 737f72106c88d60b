"""
Read-side helpers for elimination brackets: round names, grouping, champion,
setup progress, and which teams may fill a slot.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

from bracketflow.services.bracket_graph import feeders_of
from bracketflow.services.match_state import (
    BYE,
    TBD,
    BracketSide,
    MatchState,
    as_index,
    is_real_team,
)


@dataclass
class BracketRound:
    side: BracketSide
    round_number: int
    name: str
    matches: List[MatchState]


def round_name(round_number: int, total_rounds: int, side: BracketSide = BracketSide.winners) -> str:
    side = BracketSide(side)
    if side == BracketSide.grand_final:
        return "Grand Final"

    remaining = total_rounds - round_number + 1
    losers = side == BracketSide.losers
    prefix = "Losers " if losers else ""
    if remaining == 1:
        return "Losers Final" if losers else "Final"
    if remaining == 2:
        return f"{prefix}Semifinals"
    if remaining == 3:
        return f"{prefix}Quarterfinals"
    if remaining == 4:
        return f"{prefix}Round of 16"
    if remaining == 5:
        return f"{prefix}Round of 32"
    return f"{prefix}Round {round_number}"


def group_by_round(matches) -> List[BracketRound]:
    """Winners rounds, then losers rounds, then the grand final; positions ascending."""
    side_order = {BracketSide.winners: 0, BracketSide.losers: 1, BracketSide.grand_final: 2}
    buckets: Dict[tuple, List[MatchState]] = {}
    for m in as_index(matches).values():
        if m.bracket_side is None:
            continue
        buckets.setdefault((BracketSide(m.bracket_side), m.round), []).append(m)

    totals: Dict[BracketSide, int] = {}
    for side, rnd in buckets:
        totals[side] = max(totals.get(side, 0), rnd)

    rounds: List[BracketRound] = []
    for side, rnd in sorted(buckets, key=lambda k: (side_order[k[0]], k[1])):
        rounds.append(
            BracketRound(
                side=side,
                round_number=rnd,
                name=round_name(rnd, totals[side], side),
                matches=sorted(buckets[(side, rnd)], key=lambda m: m.bracket_position or 0),
            )
        )
    return rounds


def final_match(matches) -> Optional[MatchState]:
    """The grand final if there is one, else the winners-bracket match with no successor."""
    index = as_index(matches)
    for m in index.values():
        if m.bracket_side == BracketSide.grand_final:
            return m
    sinks = [
        m for m in index.values()
        if m.bracket_side == BracketSide.winners and m.next_match_id is None
    ]
    return sinks[0] if len(sinks) == 1 else None


def champion(matches) -> Optional[str]:
    final = final_match(matches)
    if final is None or final.result is None:
        return None
    return final.result.winner


def _round_one(matches) -> List[MatchState]:
    return [
        m for m in as_index(matches).values()
        if m.bracket_side == BracketSide.winners and m.round == 1
    ]


def setup_progress(matches) -> Dict[str, int]:
    """Assigned vs total real Round-1 slots (bye slots are not counted)."""
    assigned = 0
    total = 0
    for m in _round_one(matches):
        for team in (m.team_a, m.team_b):
            if team == BYE:
                continue
            total += 1
            if team != TBD:
                assigned += 1
    return {"assigned": assigned, "total": total}


def is_bracket_ready(matches) -> bool:
    progress = setup_progress(matches)
    return progress["total"] > 0 and progress["assigned"] == progress["total"]


def feeder_candidates(matches, match_id: str, all_teams: Optional[List[str]] = None) -> List[str]:
    """
    Teams that may legitimately fill a slot of *match_id*.

    Winners Round 1 accepts any stage team. Any other match accepts the
    winners of the matches advancing into it and the losers dropping into it.
    """
    index: Mapping[str, MatchState] = as_index(matches)
    target = index.get(match_id)
    if target is None:
        return []
    if target.bracket_side == BracketSide.winners and target.round == 1:
        return list(all_teams or [])

    candidates: List[str] = []
    for feeder, role in feeders_of(index, match_id):
        if feeder.result is None:
            continue
        team = feeder.winner if role == "winner" else feeder.loser
        if is_real_team(team) and team not in candidates:
            candidates.append(team)
    return candidates
