"""
Bracket Topology Builder: full match graph for single/double elimination.

Match codes:
  W<round>M<n>   winners bracket (n is 1-based position)
  L<round>M<n>   losers bracket
  GF             grand final (double elimination only)

Winners bracket: round r match p feeds round r+1 match p//2 (even p -> team_a,
odd p -> team_b). The last winners match is the final (single) or feeds the
grand final team_a (double).

Losers bracket for R = log2(bracket_size) winners rounds, 2*(R-1) rounds:
  L1           WR1 losers of matches 2j, 2j+1 -> L1 match j (team_a, team_b)
  L(2k)        drop-in round: L(2k-1) winner j -> team_a of match j,
               WR(k+1) loser at position p -> team_b of match
               M-1-p (k odd, reversed) or (p + M/2) % M (k even, halves swapped)
  L(2k+1)      internal round: L(2k) matches 2j, 2j+1 -> match j
  last L round winner -> grand final team_b
With bracket_size 2 there is no losers bracket; the final's loser drops
straight into the grand final team_b.

The crossing of drop-ins keeps a losers-bracket team from meeting the team
that just beat it, except where the bracket is too small to avoid it.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from bracketflow.services.bracket_graph import GraphWorkspace
from bracketflow.services.match_state import (
    BYE,
    SLOT_A,
    SLOT_B,
    TBD,
    BracketSide,
    EliminationMode,
    MatchFormat,
    MatchState,
    index_matches,
)
from bracketflow.services.progression_errors import InvalidConfiguration

logger = logging.getLogger(__name__)

GRAND_FINAL_CODE = "GF"


def next_power_of_two(n: int) -> int:
    """Smallest power of two >= n (1 for n <= 1)."""
    if n <= 1:
        return 1
    return 1 << (n - 1).bit_length()


def bye_count(team_count: int) -> int:
    return next_power_of_two(team_count) - team_count


def winners_round_count(bracket_size: int) -> int:
    return max(bracket_size.bit_length() - 1, 0)


def losers_round_count(bracket_size: int) -> int:
    return max(2 * (winners_round_count(bracket_size) - 1), 0)


def total_match_count(team_count: int, mode) -> int:
    """Matches produced by build(): size-1 (single), 2*size-2 (double)."""
    size = next_power_of_two(team_count)
    if EliminationMode(mode) == EliminationMode.single:
        return size - 1
    return 2 * size - 2


def bracket_fold_positions(n: int) -> List[int]:
    """Standard bracket-fold positions for *n* entries.

    Returns a flat list of seed numbers in bracket position order.
    Consecutive pairs indicate which seeds meet if chalk holds:
      4-entry  -> [1, 4, 2, 3]       -> (1v4), (2v3)
      8-entry  -> [1, 8, 4, 5, ...]   -> (1v8), (4v5), ...
    """
    if n == 1:
        return [1]
    if n == 2:
        return [1, 2]

    half = bracket_fold_positions(n // 2)

    expanded: List[int] = []
    for s in half:
        expanded.append(s)
        expanded.append(n + 1 - s)

    mid = len(expanded) // 2
    top = expanded[:mid]
    bot = expanded[mid:]
    if len(bot) >= 4:
        bot = bot[:-4] + bot[-2:] + bot[-4:-2]

    return top + bot


def bye_positions(bracket_size: int, byes: int) -> List[int]:
    """Round-1 positions that receive a bye.

    Position i is hosted by seed bracket_fold_positions(half)[i]; the *byes*
    best-placed hosts get the empty opponent, so byes spread across the
    bracket and never pair with each other.
    """
    half = bracket_size // 2
    hosts = bracket_fold_positions(half)
    return sorted(i for i, seed in enumerate(hosts) if seed <= byes)


def match_code(side: BracketSide, round_number: int, position: int) -> str:
    if side == BracketSide.grand_final:
        return GRAND_FINAL_CODE
    prefix = "W" if side == BracketSide.winners else "L"
    return f"{prefix}{round_number}M{position + 1}"


def _validate(team_count: int, mode, seeded_team_names: Sequence[str]) -> EliminationMode:
    if team_count is None or team_count < 2:
        raise InvalidConfiguration(f"A bracket needs at least 2 teams, got {team_count}")
    try:
        mode = EliminationMode(mode)
    except ValueError:
        raise InvalidConfiguration(f"Unsupported elimination mode: {mode!r}")

    if seeded_team_names:
        if len(seeded_team_names) != team_count:
            raise InvalidConfiguration(
                f"Expected {team_count} seeded team names, got {len(seeded_team_names)}"
            )
        seen = set()
        for name in seeded_team_names:
            if not name or not name.strip():
                raise InvalidConfiguration("Team names must be non-empty")
            if name in (TBD, BYE):
                raise InvalidConfiguration(f"{name!r} is reserved and cannot be used as a team name")
            if name in seen:
                raise InvalidConfiguration(f"Duplicate team name: {name!r}")
            seen.add(name)
    return mode


def _round_one_pairs(bracket_size: int, team_count: int, names: Sequence[str]) -> List[Tuple[str, str]]:
    """Round-1 (team_a, team_b) per position; seeded names are consumed in order."""
    byes_at = set(bye_positions(bracket_size, bracket_size - team_count))
    queue = list(names) if names else [TBD] * team_count
    pairs: List[Tuple[str, str]] = []
    cursor = 0
    for pos in range(bracket_size // 2):
        if pos in byes_at:
            pairs.append((queue[cursor], BYE))
            cursor += 1
        else:
            pairs.append((queue[cursor], queue[cursor + 1]))
            cursor += 2
    return pairs


def _drop_in_position(k: int, p: int, size: int) -> int:
    """Losers-round-2k position for the winners-round-(k+1) loser at *p*."""
    if k % 2 == 1:
        return size - 1 - p
    return (p + size // 2) % size


def _losers_round_size(bracket_size: int, lr: int) -> int:
    if lr % 2 == 0:
        return bracket_size >> (lr // 2 + 1)
    return bracket_size >> ((lr - 1) // 2 + 2)


def build(
    team_count: int,
    mode=EliminationMode.single,
    seeded_team_names: Sequence[str] = (),
    match_format=MatchFormat.BO3,
    final_format: Optional[MatchFormat] = MatchFormat.BO5,
) -> List[MatchState]:
    """
    Build the full (unsaved) match graph for an elimination bracket.

    Args:
        team_count: number of entrants (>= 2)
        mode: "single" or "double"
        seeded_team_names: names in seed order, or empty for manual seeding
            (all real slots TBD; byes are still placed)
        match_format: format of regular matches
        final_format: format of the deciding matches (None = match_format)

    Returns:
        Matches ordered winners rounds, losers rounds, grand final. Round-1
        byes are pre-resolved and their winners already placed downstream.

    Raises:
        InvalidConfiguration: team_count < 2, unknown mode, bad seed list
    """
    mode = _validate(team_count, mode, seeded_team_names)
    match_format = MatchFormat(match_format)
    final_format = MatchFormat(final_format) if final_format else match_format
    double = mode == EliminationMode.double

    bracket_size = next_power_of_two(team_count)
    w_rounds = winners_round_count(bracket_size)
    l_rounds = losers_round_count(bracket_size) if double else 0

    matches: List[MatchState] = []

    pairs = _round_one_pairs(bracket_size, team_count, seeded_team_names)
    for r in range(1, w_rounds + 1):
        count = bracket_size >> r
        is_final = r == w_rounds
        for p in range(count):
            m = MatchState(
                id=match_code(BracketSide.winners, r, p),
                round=r,
                bracket_side=BracketSide.winners,
                bracket_position=p,
                match_format=final_format if is_final else match_format,
            )
            if r == 1:
                m.team_a, m.team_b = pairs[p]
                m.is_bye = BYE in pairs[p]

            if not is_final:
                m.next_match_id = match_code(BracketSide.winners, r + 1, p // 2)
                m.next_match_slot = SLOT_A if p % 2 == 0 else SLOT_B
            elif double:
                m.next_match_id = GRAND_FINAL_CODE
                m.next_match_slot = SLOT_A

            if double:
                if l_rounds == 0:
                    m.next_loser_match_id = GRAND_FINAL_CODE
                    m.next_loser_match_slot = SLOT_B
                elif r == 1:
                    m.next_loser_match_id = match_code(BracketSide.losers, 1, p // 2)
                    m.next_loser_match_slot = SLOT_A if p % 2 == 0 else SLOT_B
                else:
                    k = r - 1
                    m.next_loser_match_id = match_code(
                        BracketSide.losers, 2 * k, _drop_in_position(k, p, count)
                    )
                    m.next_loser_match_slot = SLOT_B
            matches.append(m)

    for lr in range(1, l_rounds + 1):
        count = _losers_round_size(bracket_size, lr)
        is_final = lr == l_rounds
        for p in range(count):
            m = MatchState(
                id=match_code(BracketSide.losers, lr, p),
                round=lr,
                bracket_side=BracketSide.losers,
                bracket_position=p,
                match_format=final_format if is_final else match_format,
            )
            if is_final:
                m.next_match_id = GRAND_FINAL_CODE
                m.next_match_slot = SLOT_B
            elif lr % 2 == 1:
                m.next_match_id = match_code(BracketSide.losers, lr + 1, p)
                m.next_match_slot = SLOT_A
            else:
                m.next_match_id = match_code(BracketSide.losers, lr + 1, p // 2)
                m.next_match_slot = SLOT_A if p % 2 == 0 else SLOT_B
            matches.append(m)

    if double:
        matches.append(
            MatchState(
                id=GRAND_FINAL_CODE,
                round=1,
                bracket_side=BracketSide.grand_final,
                bracket_position=0,
                match_format=final_format,
            )
        )

    matches = _settle_round_one_byes(matches)

    logger.info(
        "Built %s-elimination bracket: %d teams, size %d, %d byes, %d matches",
        mode.value,
        team_count,
        bracket_size,
        bracket_size - team_count,
        len(matches),
    )
    return matches


def _settle_round_one_byes(matches: List[MatchState]) -> List[MatchState]:
    by_id: Dict[str, MatchState] = index_matches(matches)
    ws = GraphWorkspace(by_id)
    for m in matches:
        if m.bracket_side == BracketSide.winners and m.round == 1 and m.is_bye:
            ws.settle(m.id)
    return [ws.get(m.id) for m in matches]
