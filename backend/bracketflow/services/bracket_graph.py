"""
Advancement graph primitives shared by the topology builder and the
progression engine.

A GraphWorkspace is a copy-on-write view over a match snapshot. Every edit
goes through place / vacate / unwind / resolve / settle, which keep the
winner (next_match_id) and loser (next_loser_match_id) edges consistent:

  place    put a team into a destination slot; a stale occupant is vacated first
  vacate   empty a slot; if the match was already played, unwind it
  unwind   clear a result and retract its winner/loser from downstream slots
  resolve  record a result and place its winner/loser downstream
  settle   auto-resolve a match holding one real team and one BYE

Only removals (vacate, unwind) mark a match invalidated; filling a TBD slot
does not change what an existing prediction on that match meant.

Each (operation, match, slot) is performed at most once per workspace. A
revisit can only come from a cycle in the graph, so it raises StaleTopology.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Optional, Set, Tuple

from bracketflow.services.match_state import (
    BYE,
    BYE_SCORE,
    SLOTS,
    TBD,
    MatchResult,
    MatchState,
)
from bracketflow.services.progression_errors import StaleTopology

logger = logging.getLogger(__name__)


class GraphWorkspace:
    """Copy-on-write editing session over one snapshot."""

    def __init__(self, snapshot: Mapping[str, MatchState]):
        self._snapshot = snapshot
        self._touched: Dict[str, MatchState] = {}
        self._visited: Set[Tuple[str, str, str]] = set()
        self.cleared: List[str] = []
        self.invalidated: List[str] = []

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    def exists(self, match_id: Optional[str]) -> bool:
        return match_id is not None and (match_id in self._touched or match_id in self._snapshot)

    def get(self, match_id: str) -> MatchState:
        if match_id in self._touched:
            return self._touched[match_id]
        try:
            return self._snapshot[match_id]
        except KeyError:
            raise StaleTopology(f"Advancement edge points to unknown match {match_id!r}")

    def edit(self, match_id: str) -> MatchState:
        if match_id not in self._touched:
            self._touched[match_id] = self.get(match_id).copy()
        return self._touched[match_id]

    @property
    def touched(self) -> Dict[str, MatchState]:
        return dict(self._touched)

    def _visit(self, op: str, match_id: str, slot: str) -> None:
        key = (op, match_id, slot)
        if key in self._visited:
            raise StaleTopology(
                f"Advancement graph revisits {match_id} ({slot}) during {op}; the topology has a cycle"
            )
        self._visited.add(key)

    def _mark(self, bucket: List[str], match_id: str) -> None:
        if match_id not in bucket:
            bucket.append(match_id)

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def place(self, team: str, dest_id: Optional[str], slot: Optional[str]) -> None:
        """Write *team* into *dest_id*; slot None means first open slot."""
        if dest_id is None or team is None:
            return
        dest = self.get(dest_id)
        if slot is None:
            if dest.slot_of(team) is not None:
                return
            open_slots = [s for s in SLOTS if dest.team_in(s) == TBD]
            if not open_slots:
                raise StaleTopology(f"No open slot in {dest_id} for {team!r}")
            slot = open_slots[0]

        occupant = dest.team_in(slot)
        if occupant == team:
            return
        self._visit("place", dest_id, slot)
        if occupant == BYE:
            raise StaleTopology(f"Slot {slot} of {dest_id} is a structural bye; cannot place {team!r}")
        if occupant != TBD:
            logger.debug("Replacing stale occupant %s in %s.%s with %s", occupant, dest_id, slot, team)
            self.vacate(dest_id, slot)

        dest = self.edit(dest_id)
        dest.set_team(slot, team)
        self.settle(dest_id)

    def vacate(self, match_id: str, slot: str) -> None:
        """Return *slot* to TBD, unwinding the match first if it was played."""
        match = self.get(match_id)
        occupant = match.team_in(slot)
        if occupant == TBD:
            return
        if occupant == BYE:
            raise StaleTopology(f"Slot {slot} of {match_id} is a structural bye and cannot be vacated")
        self._visit("vacate", match_id, slot)
        if match.has_result:
            self.unwind(match_id)
        match = self.edit(match_id)
        match.set_team(slot, TBD)
        self._mark(self.invalidated, match_id)

    def unwind(self, match_id: str) -> None:
        """Clear the recorded result of *match_id* and everything built on it."""
        match = self.get(match_id)
        if not match.has_result:
            return
        self._visit("unwind", match_id, "")
        winner = match.winner
        loser = match.loser
        logger.debug("Unwinding %s (winner %s)", match_id, winner)

        self.retract(winner, match.next_match_id, match.next_match_slot)
        # A BYE loser stays valid whoever wins, so it is never retracted
        if loser != BYE:
            self.retract(loser, match.next_loser_match_id, match.next_loser_match_slot)

        match = self.edit(match_id)
        match.result = None
        self._mark(self.cleared, match_id)
        self._mark(self.invalidated, match_id)

    def retract(self, team: Optional[str], dest_id: Optional[str], slot: Optional[str]) -> None:
        """Remove *team* from *dest_id* if it is still there."""
        if dest_id is None or team is None or team == BYE:
            return
        dest = self.get(dest_id)
        if slot is None:
            slot = dest.slot_of(team)
            if slot is None:
                return
        if dest.team_in(slot) != team:
            return
        self.vacate(dest_id, slot)

    def resolve(self, match_id: str, result: MatchResult) -> None:
        """Record *result* and push its winner and loser downstream."""
        match = self.edit(match_id)
        match.result = result
        self.place(match.winner, match.next_match_id, match.next_match_slot)
        if match.next_loser_match_id is not None:
            self.place(match.loser, match.next_loser_match_id, match.next_loser_match_slot)

    def settle(self, match_id: str) -> None:
        """Auto-resolve a bye: one slot BYE, the other known (a bye chain may follow)."""
        match = self.get(match_id)
        if match.has_result or BYE not in (match.team_a, match.team_b):
            return
        if TBD in (match.team_a, match.team_b):
            return
        winner = match.team_a if match.team_a != BYE else match.team_b
        logger.debug("Auto-resolving bye %s -> %s", match_id, winner)
        match = self.edit(match_id)
        match.is_bye = True
        self.resolve(match_id, MatchResult(winner=winner, score=BYE_SCORE))


# ----------------------------------------------------------------------
# Topology checks
# ----------------------------------------------------------------------


def feeders_of(matches: Mapping[str, MatchState], match_id: str) -> List[Tuple[MatchState, str]]:
    """(feeder, role) pairs for every match pointing at *match_id*; role is 'winner' or 'loser'."""
    feeders: List[Tuple[MatchState, str]] = []
    for m in matches.values():
        if m.next_match_id == match_id:
            feeders.append((m, "winner"))
        if m.next_loser_match_id == match_id:
            feeders.append((m, "loser"))
    return feeders


def path_to_sink(matches: Mapping[str, MatchState], match_id: str) -> List[str]:
    """Follow next_match_id from *match_id* to the end of the chain (inclusive)."""
    path: List[str] = []
    seen: Set[str] = set()
    current: Optional[str] = match_id
    while current is not None:
        if current in seen:
            raise StaleTopology(f"next_match_id cycle through {current}")
        if current not in matches:
            raise StaleTopology(f"next_match_id points to unknown match {current!r}")
        seen.add(current)
        path.append(current)
        current = matches[current].next_match_id
    return path


def check_topology(matches: Mapping[str, MatchState]) -> str:
    """
    Verify the advancement graph of one bracket and return its sink id.

    Checks:
    - every edge points at a known match
    - no destination slot is fed by two edges
    - winner/loser edges together are acyclic
    - exactly one match has no next_match_id, and every match reaches it

    Raises:
        StaleTopology: on the first violated rule
    """
    fed: Set[Tuple[str, str]] = set()
    for m in matches.values():
        for dest, slot in ((m.next_match_id, m.next_match_slot), (m.next_loser_match_id, m.next_loser_match_slot)):
            if dest is None:
                continue
            if dest not in matches:
                raise StaleTopology(f"{m.id} points to unknown match {dest!r}")
            if slot is not None:
                if (dest, slot) in fed:
                    raise StaleTopology(f"Slot {slot} of {dest} is fed twice")
                fed.add((dest, slot))

    # Kahn's algorithm over both edge kinds
    indegree: Dict[str, int] = {mid: 0 for mid in matches}
    for m in matches.values():
        for dest in (m.next_match_id, m.next_loser_match_id):
            if dest is not None:
                indegree[dest] += 1
    ready = [mid for mid, deg in indegree.items() if deg == 0]
    ordered = 0
    while ready:
        mid = ready.pop()
        ordered += 1
        m = matches[mid]
        for dest in (m.next_match_id, m.next_loser_match_id):
            if dest is not None:
                indegree[dest] -= 1
                if indegree[dest] == 0:
                    ready.append(dest)
    if ordered != len(matches):
        raise StaleTopology("Advancement graph contains a cycle")

    sinks = [m.id for m in matches.values() if m.next_match_id is None]
    if len(sinks) != 1:
        raise StaleTopology(f"Expected exactly one final, found {len(sinks)}: {sorted(sinks)}")
    sink = sinks[0]
    for mid in matches:
        if path_to_sink(matches, mid)[-1] != sink:
            raise StaleTopology(f"{mid} does not reach the final {sink}")
    return sink
