"""
Runtime: result entry, corrections and manual slot assignment.
Every write runs the progression engine and commits the whole cascade at once;
predictions on invalidated matches are dropped in the same commit.
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, field_validator
from sqlmodel import Session, select

from bracketflow.database import get_session
from bracketflow.models.match import Match
from bracketflow.routes.stages import MatchResponse
from bracketflow.services import advancement_service
from bracketflow.services.advancement_service import AdvancementOutcome
from bracketflow.services.match_state import SLOTS
from bracketflow.services.progression_errors import ProgressionError
from bracketflow.services.score_rules import possible_scores
from bracketflow.utils.stage_guards import http_error, require_elimination_stage, require_stage

router = APIRouter()


class MatchResultUpdate(BaseModel):
    winner: str
    score: str

    @field_validator("winner", "score")
    @classmethod
    def strip_value(cls, v):
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()


class SlotAssignment(BaseModel):
    team: str


class AdvancementResponse(BaseModel):
    match: MatchResponse
    updated: List[str]
    cleared: List[str]
    invalidated: List[str]
    predictions_dropped: int = 0


class CandidatesResponse(BaseModel):
    match_code: str
    candidates: List[str]
    possible_scores: dict


def get_stage_match(session: Session, stage_id: int, match_code: str) -> Match:
    match = session.exec(
        select(Match).where(Match.stage_id == stage_id, Match.match_code == match_code)
    ).first()
    if not match:
        raise HTTPException(status_code=404, detail="Match not found")
    return match


def _response(session: Session, stage_id: int, outcome: AdvancementOutcome) -> AdvancementResponse:
    match = get_stage_match(session, stage_id, outcome.match_code)
    session.refresh(match)
    return AdvancementResponse(
        match=MatchResponse.model_validate(match),
        updated=outcome.updated,
        cleared=outcome.cleared,
        invalidated=outcome.invalidated,
        predictions_dropped=outcome.predictions_dropped,
    )


@router.get("/stages/{stage_id}/matches", response_model=List[MatchResponse])
def list_stage_matches(stage_id: int, session: Session = Depends(get_session)) -> List[MatchResponse]:
    """All matches of a stage. Stable order: round_number, bracket_position, id."""
    stage = require_stage(session, stage_id)
    rows = advancement_service.load_rows(session, stage.id)
    return [MatchResponse.model_validate(row) for row in rows.values()]


@router.put("/stages/{stage_id}/matches/{match_code}/result", response_model=AdvancementResponse)
def put_match_result(
    stage_id: int,
    match_code: str,
    payload: MatchResultUpdate,
    session: Session = Depends(get_session),
) -> AdvancementResponse:
    """Record or correct a result. A changed winner retracts everything the old result fed."""
    stage = require_stage(session, stage_id)
    try:
        outcome = advancement_service.record_result(session, stage, match_code, payload.winner, payload.score)
    except ProgressionError as exc:
        raise http_error(exc)
    return _response(session, stage.id, outcome)


@router.delete("/stages/{stage_id}/matches/{match_code}/result", response_model=AdvancementResponse)
def delete_match_result(
    stage_id: int,
    match_code: str,
    session: Session = Depends(get_session),
) -> AdvancementResponse:
    """Clear a result and retract its downstream effects. Bye results cannot be cleared."""
    stage = require_stage(session, stage_id)
    try:
        outcome = advancement_service.clear_match_result(session, stage, match_code)
    except ProgressionError as exc:
        raise http_error(exc)
    return _response(session, stage.id, outcome)


@router.put("/stages/{stage_id}/matches/{match_code}/slots/{slot}", response_model=AdvancementResponse)
def put_match_slot(
    stage_id: int,
    match_code: str,
    slot: str,
    payload: SlotAssignment,
    session: Session = Depends(get_session),
) -> AdvancementResponse:
    """Manually place a team into team_a/team_b ("TBD" empties the slot)."""
    if slot not in SLOTS:
        raise HTTPException(status_code=422, detail=f"slot must be one of {', '.join(SLOTS)}")
    stage = require_elimination_stage(session, stage_id)
    try:
        outcome = advancement_service.assign_slot(session, stage, match_code, slot, payload.team.strip())
    except ProgressionError as exc:
        raise http_error(exc)
    return _response(session, stage.id, outcome)


@router.get("/stages/{stage_id}/matches/{match_code}/candidates", response_model=CandidatesResponse)
def get_match_candidates(
    stage_id: int,
    match_code: str,
    session: Session = Depends(get_session),
) -> CandidatesResponse:
    """Teams eligible for the match's slots, plus the legal scores per winning side."""
    stage = require_elimination_stage(session, stage_id)
    match = get_stage_match(session, stage.id, match_code)
    candidates = advancement_service.match_candidates(session, stage, match_code) or []
    return CandidatesResponse(
        match_code=match_code,
        candidates=candidates,
        possible_scores={slot: possible_scores(match.match_format, slot) for slot in SLOTS},
    )
