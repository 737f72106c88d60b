"""
Predictions: one pick per user per match.
Picks are dropped automatically when a correction invalidates their match.
"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict
from sqlmodel import Session, select

from bracketflow.database import get_session
from bracketflow.models.prediction import Prediction
from bracketflow.routes.runtime import get_stage_match
from bracketflow.services.match_state import SLOTS, is_real_team
from bracketflow.services.score_rules import possible_scores
from bracketflow.utils.clock import utc_now
from bracketflow.utils.stage_guards import require_stage

router = APIRouter()


class PredictionCreate(BaseModel):
    user_id: str
    predicted_winner: str
    predicted_score: Optional[str] = None


class PredictionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    match_id: int
    user_id: str
    predicted_winner: str
    predicted_score: Optional[str]
    created_at: datetime


@router.post(
    "/stages/{stage_id}/matches/{match_code}/predictions",
    response_model=PredictionResponse,
    status_code=201,
)
def submit_prediction(
    stage_id: int,
    match_code: str,
    payload: PredictionCreate,
    session: Session = Depends(get_session),
):
    """Create or replace a user's pick. Only open matches with both teams known accept picks."""
    stage = require_stage(session, stage_id)
    match = get_stage_match(session, stage.id, match_code)

    if match.result_json is not None or match.is_bye:
        raise HTTPException(status_code=409, detail="Match already has a result")
    if not (is_real_team(match.team_a) and is_real_team(match.team_b)):
        raise HTTPException(status_code=409, detail="Match participants are not known yet")
    if payload.predicted_winner not in (match.team_a, match.team_b):
        raise HTTPException(status_code=422, detail=f"{payload.predicted_winner!r} does not play in {match_code}")
    if payload.predicted_score is not None:
        winner_slot = SLOTS[0] if payload.predicted_winner == match.team_a else SLOTS[1]
        if payload.predicted_score not in possible_scores(match.match_format, winner_slot):
            raise HTTPException(status_code=422, detail=f"Score {payload.predicted_score!r} is not possible")

    prediction = session.exec(
        select(Prediction).where(Prediction.match_id == match.id, Prediction.user_id == payload.user_id)
    ).first()
    if prediction is None:
        prediction = Prediction(match_id=match.id, user_id=payload.user_id, predicted_winner=payload.predicted_winner)
    prediction.predicted_winner = payload.predicted_winner
    prediction.predicted_score = payload.predicted_score
    prediction.created_at = utc_now()

    session.add(prediction)
    session.commit()
    session.refresh(prediction)
    return prediction


@router.get(
    "/stages/{stage_id}/matches/{match_code}/predictions",
    response_model=List[PredictionResponse],
)
def list_predictions(stage_id: int, match_code: str, session: Session = Depends(get_session)):
    """List picks for a match"""
    stage = require_stage(session, stage_id)
    match = get_stage_match(session, stage.id, match_code)
    return session.exec(
        select(Prediction).where(Prediction.match_id == match.id).order_by(Prediction.id)
    ).all()
