"""
Match Progression Engine: apply, correct and clear results on a bracket.

All operations are pure: they read a snapshot (list or {id: MatchState})
and return a ProgressionDiff holding copies of every match they touched.
The caller commits diff.updated atomically and drops predictions for
diff.invalidated.

Correction ("domino"): when a match's winner changes, the old winner and
loser are retracted from their downstream slots. A downstream match that was
already played with a retracted team loses its result too, and the
retraction continues from there. The new winner/loser are then placed, and
bye destinations resolve automatically.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from bracketflow.services.bracket_graph import GraphWorkspace
from bracketflow.services.match_state import (
    BYE,
    BYE_SCORE,
    SLOTS,
    TBD,
    MatchResult,
    MatchState,
    as_index,
)
from bracketflow.services.progression_errors import (
    InvalidConfiguration,
    InvalidWinner,
    MatchNotFound,
    StaleTopology,
)
from bracketflow.services.score_rules import validate_score

logger = logging.getLogger(__name__)


@dataclass
class ProgressionDiff:
    """Outcome of one engine call.

    updated:     final state of every touched match, keyed by id
    cleared:     matches whose recorded result was retracted
    invalidated: matches whose participants or result changed underneath
                 any prediction made on them
    """

    updated: Dict[str, MatchState] = field(default_factory=dict)
    cleared: List[str] = field(default_factory=list)
    invalidated: List[str] = field(default_factory=list)

    @property
    def affected(self) -> List[MatchState]:
        return list(self.updated.values())

    @property
    def is_empty(self) -> bool:
        return not self.updated

    def apply_to(self, matches) -> Dict[str, MatchState]:
        """Return a new {id: MatchState} with this diff merged over *matches*."""
        merged = dict(as_index(matches))
        merged.update(self.updated)
        return merged


def _lookup(snapshot: Mapping[str, MatchState], match_id: str) -> MatchState:
    match = snapshot.get(match_id)
    if match is None:
        raise MatchNotFound(f"Match not found: {match_id}")
    return match


def _diff_from(ws: GraphWorkspace, exclude_invalidated: Optional[str] = None) -> ProgressionDiff:
    return ProgressionDiff(
        updated=ws.touched,
        cleared=list(ws.cleared),
        invalidated=[mid for mid in ws.invalidated if mid != exclude_invalidated],
    )


def apply_result(matches, match_id: str, winner: str, score: str) -> ProgressionDiff:
    """
    Record *winner*/*score* on *match_id* and resolve every downstream effect.

    Reapplying the same result is a no-op (empty diff). A different score
    with the same winner only rewrites the target. A different winner
    retracts the previous propagation first (cascading through any
    downstream match already played with the retracted team).

    Raises:
        MatchNotFound: unknown match_id
        StaleTopology: a participant is still TBD, or the graph is inconsistent
        InvalidWinner: winner is not team_a/team_b
        InvalidScore: score illegal for the format or for the winner's side
    """
    snapshot = as_index(matches)
    match = _lookup(snapshot, match_id)

    if not match.participants_known:
        raise StaleTopology(
            f"Match {match_id} is not ready: {match.team_a} vs {match.team_b}"
        )
    if winner == BYE or winner not in (match.team_a, match.team_b):
        raise InvalidWinner(
            f"{winner!r} is not a participant of {match_id} ({match.team_a} vs {match.team_b})"
        )
    winner_slot = match.slot_of(winner)
    validate_score(match.match_format, score, winner_slot, is_bye=match.is_bye)

    new_result = MatchResult(winner=winner, score=score)
    if match.result == new_result:
        logger.debug("Result for %s unchanged; nothing to do", match_id)
        return ProgressionDiff()

    ws = GraphWorkspace(snapshot)
    previous = match.result
    if previous is not None and previous.winner != winner:
        logger.info(
            "Correcting %s: winner %s -> %s; retracting downstream", match_id, previous.winner, winner
        )
        ws.unwind(match_id)

    if previous is not None and previous.winner == winner:
        # Same advancement; only the score changes
        ws.edit(match_id).result = new_result
    else:
        ws.resolve(match_id, new_result)

    diff = _diff_from(ws, exclude_invalidated=match_id)
    diff.cleared = [mid for mid in diff.cleared if mid != match_id]
    logger.info(
        "Applied %s to %s: %d matches updated, %d results cleared",
        f"{winner} {score}",
        match_id,
        len(diff.updated),
        len(diff.cleared),
    )
    return diff


def clear_result(matches, match_id: str) -> ProgressionDiff:
    """
    Remove the result of *match_id* and retract everything built on it.

    Bye matches keep their automatic result.

    Raises:
        MatchNotFound: unknown match_id
    """
    snapshot = as_index(matches)
    match = _lookup(snapshot, match_id)
    if match.result is None:
        return ProgressionDiff()
    if match.result.score == BYE_SCORE:
        raise StaleTopology(f"Match {match_id} is a bye; its result is structural")

    ws = GraphWorkspace(snapshot)
    ws.unwind(match_id)
    diff = _diff_from(ws, exclude_invalidated=match_id)
    logger.info("Cleared result of %s (%d downstream matches reset)", match_id, len(diff.cleared) - 1)
    return diff


def _check_not_seated(snapshot: Mapping[str, MatchState], target: MatchState, slot: str, team: str) -> None:
    """A team plays at most one match per (bracket_side, round)."""
    for m in snapshot.values():
        if m.bracket_side != target.bracket_side or m.round != target.round:
            continue
        holding = m.slot_of(team)
        if holding is None or (m.id == target.id and holding == slot):
            continue
        raise InvalidConfiguration(f"{team!r} already plays in {m.id} this round")


def assign_team(matches, match_id: str, slot: str, team: str) -> ProgressionDiff:
    """
    Manually set *slot* of *match_id* to *team* ("TBD" empties it).

    Used to seed a bracket built without names. A played match cannot be
    re-seated this way; the previous occupant's downstream effects are
    retracted, and a slot opposite a BYE resolves the bye immediately.

    Raises:
        MatchNotFound: unknown match_id
        StaleTopology: slot is a structural bye, or the match already has a result
        ValueError: unknown slot name
    """
    if slot not in SLOTS:
        raise ValueError(f"Unknown slot: {slot}")
    snapshot = as_index(matches)
    match = _lookup(snapshot, match_id)
    if team == BYE:
        raise StaleTopology("BYE slots are fixed by the bracket size")
    if match.team_in(slot) == team:
        return ProgressionDiff()
    if match.has_result and match.result.score != BYE_SCORE:
        raise StaleTopology(f"Match {match_id} already has a result; clear it before reassigning")
    if team != TBD:
        _check_not_seated(snapshot, match, slot, team)

    ws = GraphWorkspace(snapshot)
    if match.team_in(slot) != TBD:
        ws.vacate(match_id, slot)
    if team != TBD:
        ws.place(team, match_id, slot)
    return _diff_from(ws)
