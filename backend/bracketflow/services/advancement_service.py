"""
Advancement service: runs the pure engines against a stage's stored matches.

Every mutation follows the same path:
  1. take the stage lock (one writer per stage)
  2. load the stage snapshot (rows -> MatchState)
  3. run the engine (raises before anything is written)
  4. write every touched match and drop predictions on invalidated matches
     in a single commit
"""
import logging
import threading
import weakref
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from sqlmodel import Session, select

from bracketflow.models.match import Match
from bracketflow.models.prediction import Prediction
from bracketflow.models.stage import FORMAT_DOUBLE_ELIMINATION, Stage
from bracketflow.services import bracket_topology, bracket_view, progression_engine, swiss_pairing, swiss_standings
from bracketflow.services.bracket_graph import check_topology
from bracketflow.services.match_state import (
    BracketSide,
    EliminationMode,
    MatchFormat,
    MatchResult,
    MatchState,
    index_matches,
)
from bracketflow.services.progression_engine import ProgressionDiff
from bracketflow.services.progression_errors import InvalidConfiguration, StaleTopology
from bracketflow.utils.clock import utc_now

logger = logging.getLogger(__name__)

# Entries disappear once no caller holds the lock
_locks: "weakref.WeakValueDictionary[int, threading.Lock]" = weakref.WeakValueDictionary()
_locks_guard = threading.Lock()


def stage_lock(stage_id: int) -> threading.Lock:
    """The lock serialising result entry, correction and round creation for one stage."""
    with _locks_guard:
        lock = _locks.get(stage_id)
        if lock is None:
            lock = threading.Lock()
            _locks[stage_id] = lock
        return lock


@dataclass
class AdvancementOutcome:
    match_code: str
    updated: List[str] = field(default_factory=list)
    cleared: List[str] = field(default_factory=list)
    invalidated: List[str] = field(default_factory=list)
    predictions_dropped: int = 0


# ----------------------------------------------------------------------
# Row <-> MatchState
# ----------------------------------------------------------------------


def row_to_state(row: Match) -> MatchState:
    result = None
    if row.result_json:
        result = MatchResult(winner=row.result_json["winner"], score=row.result_json["score"])
    return MatchState(
        id=row.match_code,
        team_a=row.team_a,
        team_b=row.team_b,
        round=row.round_number,
        bracket_side=BracketSide(row.bracket_side) if row.bracket_side else None,
        bracket_position=row.bracket_position,
        next_match_id=row.next_match_code,
        next_match_slot=row.next_match_slot,
        next_loser_match_id=row.next_loser_match_code,
        next_loser_match_slot=row.next_loser_match_slot,
        is_bye=row.is_bye,
        result=result,
        match_format=MatchFormat(row.match_format),
    )


def state_to_row(state: MatchState, stage_id: int) -> Match:
    row = Match(stage_id=stage_id, match_code=state.id)
    write_state(row, state)
    return row


def write_state(row: Match, state: MatchState) -> None:
    """Copy engine state onto a row; played_at follows the result."""
    had_result = row.result_json is not None
    row.team_a = state.team_a
    row.team_b = state.team_b
    row.round_number = state.round
    row.bracket_side = state.bracket_side.value if state.bracket_side else None
    row.bracket_position = state.bracket_position
    row.next_match_code = state.next_match_id
    row.next_match_slot = state.next_match_slot
    row.next_loser_match_code = state.next_loser_match_id
    row.next_loser_match_slot = state.next_loser_match_slot
    row.is_bye = state.is_bye
    row.match_format = MatchFormat(state.match_format).value
    if state.result is None:
        row.result_json = None
        row.played_at = None
    else:
        row.result_json = {"winner": state.result.winner, "score": state.result.score}
        if not had_result or row.played_at is None:
            row.played_at = utc_now()


def load_rows(session: Session, stage_id: int) -> Dict[str, Match]:
    rows = session.exec(
        select(Match)
        .where(Match.stage_id == stage_id)
        .order_by(Match.round_number, Match.bracket_position, Match.id)
    ).all()
    return {row.match_code: row for row in rows}


def load_snapshot(session: Session, stage_id: int) -> Tuple[Dict[str, Match], Dict[str, MatchState]]:
    rows = load_rows(session, stage_id)
    return rows, index_matches(row_to_state(row) for row in rows.values())


# ----------------------------------------------------------------------
# Commit
# ----------------------------------------------------------------------


def _drop_predictions(session: Session, match_ids: List[int]) -> int:
    if not match_ids:
        return 0
    stale = session.exec(select(Prediction).where(Prediction.match_id.in_(match_ids))).all()
    for prediction in stale:
        session.delete(prediction)
    return len(stale)


def commit_diff(session: Session, rows: Dict[str, Match], diff: ProgressionDiff) -> int:
    """Persist *diff* in one transaction; returns the number of predictions dropped."""
    for code, state in diff.updated.items():
        row = rows[code]
        write_state(row, state)
        session.add(row)

    dropped = _drop_predictions(session, [rows[code].id for code in diff.invalidated if code in rows])
    session.commit()
    if dropped:
        logger.warning("Dropped %d predictions on invalidated matches %s", dropped, diff.invalidated)
    return dropped


def _outcome(match_code: str, diff: ProgressionDiff, dropped: int) -> AdvancementOutcome:
    return AdvancementOutcome(
        match_code=match_code,
        updated=sorted(diff.updated),
        cleared=list(diff.cleared),
        invalidated=list(diff.invalidated),
        predictions_dropped=dropped,
    )


# ----------------------------------------------------------------------
# Results
# ----------------------------------------------------------------------


def record_result(session: Session, stage: Stage, match_code: str, winner: str, score: str) -> AdvancementOutcome:
    """Apply or correct a result and commit its whole cascade."""
    with stage_lock(stage.id):
        rows, snapshot = load_snapshot(session, stage.id)
        diff = progression_engine.apply_result(snapshot, match_code, winner, score)
        dropped = commit_diff(session, rows, diff) if not diff.is_empty else 0
    return _outcome(match_code, diff, dropped)


def clear_match_result(session: Session, stage: Stage, match_code: str) -> AdvancementOutcome:
    with stage_lock(stage.id):
        rows, snapshot = load_snapshot(session, stage.id)
        diff = progression_engine.clear_result(snapshot, match_code)
        dropped = commit_diff(session, rows, diff) if not diff.is_empty else 0
    return _outcome(match_code, diff, dropped)


def assign_slot(session: Session, stage: Stage, match_code: str, slot: str, team: str) -> AdvancementOutcome:
    """Manual seeding: *team* must belong to the stage (or be "TBD")."""
    with stage_lock(stage.id):
        session.refresh(stage)
        if team != "TBD" and team not in (stage.teams or []):
            raise InvalidConfiguration(f"{team!r} is not registered in stage {stage.name!r}")
        rows, snapshot = load_snapshot(session, stage.id)
        diff = progression_engine.assign_team(snapshot, match_code, slot, team)
        dropped = commit_diff(session, rows, diff) if not diff.is_empty else 0
    return _outcome(match_code, diff, dropped)


# ----------------------------------------------------------------------
# Elimination brackets
# ----------------------------------------------------------------------


def create_bracket(session: Session, stage: Stage, seeded: bool = True, replace: bool = False) -> List[Match]:
    """
    Build and store the full match graph for an elimination stage.

    With seeded=True the stage's team list (in order) is the seed order;
    otherwise every real slot starts as TBD for manual assignment.

    Raises:
        InvalidConfiguration: not an elimination stage, or bad team list
        StaleTopology: the stage already has matches and replace is False
    """
    with stage_lock(stage.id):
        session.refresh(stage)
        if not stage.is_elimination:
            raise InvalidConfiguration(f"Stage {stage.id} is {stage.format}; brackets need an elimination format")
        mode = EliminationMode.double if stage.format == FORMAT_DOUBLE_ELIMINATION else EliminationMode.single
        teams = list(stage.teams or [])

        states = bracket_topology.build(
            len(teams),
            mode=mode,
            seeded_team_names=teams if seeded else (),
            match_format=MatchFormat(stage.match_format),
            final_format=MatchFormat(stage.final_format) if stage.final_format else None,
        )
        check_topology(index_matches(states))

        existing = load_rows(session, stage.id)
        if existing:
            if not replace:
                raise StaleTopology(f"Stage {stage.id} already has a bracket ({len(existing)} matches)")
            dropped = _drop_predictions(session, [row.id for row in existing.values()])
            for row in existing.values():
                session.delete(row)
            session.flush()
            logger.info("Replacing bracket of stage %s (%d predictions dropped)", stage.id, dropped)

        rows = [state_to_row(state, stage.id) for state in states]
        for row in rows:
            session.add(row)
        session.commit()
        for row in rows:
            session.refresh(row)

    logger.info("Stored %s bracket for stage %s: %d matches", mode.value, stage.id, len(rows))
    return rows


# ----------------------------------------------------------------------
# Swiss
# ----------------------------------------------------------------------


def _require_swiss(stage: Stage) -> None:
    if not stage.is_swiss:
        raise InvalidConfiguration(f"Stage {stage.id} is {stage.format}, not swiss")


def stage_standings(session: Session, stage: Stage) -> List[swiss_standings.SwissStanding]:
    _require_swiss(stage)
    _, snapshot = load_snapshot(session, stage.id)
    return swiss_standings.compute(
        stage.teams or [],
        snapshot.values(),
        qualify_at=stage.qualify_at,
        eliminate_at=stage.eliminate_at,
    )


def stage_record_buckets(session: Session, stage: Stage) -> List[swiss_standings.RecordBucket]:
    if stage.qualify_at is None or stage.eliminate_at is None:
        raise InvalidConfiguration(f"Stage {stage.id} has no qualify/eliminate thresholds")
    return swiss_standings.group_by_record(stage_standings(session, stage), stage.qualify_at, stage.eliminate_at)


def _next_pairings(
    stage: Stage, snapshot: Dict[str, MatchState], strict: bool
) -> List[swiss_pairing.SwissPairing]:
    if stage.current_round > 0 and not swiss_standings.is_round_complete(snapshot.values(), stage.current_round):
        raise StaleTopology(f"Round {stage.current_round} of stage {stage.id} still has unplayed matches")

    standings = swiss_standings.compute(
        stage.teams or [],
        snapshot.values(),
        qualify_at=stage.qualify_at,
        eliminate_at=stage.eliminate_at,
    )
    # Qualified and eliminated teams sit out the remaining rounds
    active = [s for s in standings if s.status == swiss_standings.SwissStatus.active]
    if len(active) < 2:
        raise InvalidConfiguration(f"Stage {stage.id} has fewer than two active teams; Swiss is finished")

    history = swiss_standings.OpponentHistory.from_matches(snapshot.values())
    return swiss_pairing.pair(
        active,
        history,
        teams_already_given_bye=swiss_standings.teams_with_bye(snapshot.values()),
        strict=strict,
    )


def preview_pairings(session: Session, stage: Stage, strict: bool = False) -> List[swiss_pairing.SwissPairing]:
    _require_swiss(stage)
    _, snapshot = load_snapshot(session, stage.id)
    return _next_pairings(stage, snapshot, strict)


def create_swiss_round(
    session: Session, stage: Stage, strict: bool = False
) -> Tuple[int, List[swiss_pairing.SwissPairing], List[Match]]:
    """
    Pair and store the next Swiss round, then advance stage.current_round.

    Raises:
        InvalidConfiguration: not a Swiss stage, or fewer than two active teams
        StaleTopology: the current round still has unplayed matches
        PairingExhausted: strict pairing found no rematch-free matchup
    """
    _require_swiss(stage)
    with stage_lock(stage.id):
        # Another request may have created a round since the route loaded the stage
        session.refresh(stage)
        _, snapshot = load_snapshot(session, stage.id)
        pairings = _next_pairings(stage, snapshot, strict)
        round_number = stage.current_round + 1
        states = swiss_pairing.build_swiss_round(round_number, pairings, MatchFormat(stage.match_format))

        rows = [state_to_row(state, stage.id) for state in states]
        for row in rows:
            session.add(row)
        stage.current_round = round_number
        session.add(stage)
        session.commit()
        for row in rows:
            session.refresh(row)

    logger.info(
        "Created Swiss round %d for stage %s: %d matches (%d rematches)",
        round_number,
        stage.id,
        len(rows),
        len(swiss_pairing.rematches(pairings)),
    )
    return round_number, pairings, rows


def match_candidates(session: Session, stage: Stage, match_code: str) -> Optional[List[str]]:
    """Teams eligible for a slot of *match_code*; None when the match does not exist."""
    _, snapshot = load_snapshot(session, stage.id)
    if match_code not in snapshot:
        return None
    return bracket_view.feeder_candidates(snapshot, match_code, list(stage.teams or []))
