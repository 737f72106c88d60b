"""
Stages: configuration plus elimination bracket build and read-out.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from sqlmodel import Session

from bracketflow.database import get_session
from bracketflow.models.match import Match
from bracketflow.models.stage import FORMAT_SWISS, STAGE_FORMATS, Stage
from bracketflow.services import advancement_service, bracket_view
from bracketflow.services.match_state import BYE, TBD, MatchFormat
from bracketflow.services.progression_errors import ProgressionError
from bracketflow.utils.stage_guards import (
    http_error,
    require_elimination_stage,
    require_stage,
    require_tournament,
)

logger = logging.getLogger(__name__)

router = APIRouter()


class StageCreate(BaseModel):
    name: str
    format: str
    match_format: MatchFormat = MatchFormat.BO3
    final_format: Optional[MatchFormat] = MatchFormat.BO5
    teams: List[str]
    qualify_at: Optional[int] = None
    eliminate_at: Optional[int] = None

    @field_validator("format")
    @classmethod
    def validate_format(cls, v):
        if v not in STAGE_FORMATS:
            raise ValueError(f"format must be one of {', '.join(STAGE_FORMATS)}")
        return v

    @field_validator("teams")
    @classmethod
    def validate_teams(cls, v):
        names = [name.strip() for name in v]
        if any(not name for name in names):
            raise ValueError("team names cannot be empty")
        if len(set(names)) != len(names):
            raise ValueError("team names must be unique within a stage")
        if any(name in (TBD, BYE) for name in names):
            raise ValueError("TBD and BYE are reserved names")
        return names

    @model_validator(mode="after")
    def validate_swiss_thresholds(self):
        if self.format == FORMAT_SWISS:
            for label, value in (("qualify_at", self.qualify_at), ("eliminate_at", self.eliminate_at)):
                if value is not None and value < 1:
                    raise ValueError(f"{label} must be >= 1")
        return self


class StageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tournament_id: int
    name: str
    format: str
    match_format: str
    final_format: Optional[str]
    teams: List[str]
    qualify_at: Optional[int]
    eliminate_at: Optional[int]
    current_round: int
    created_at: datetime


class MatchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    stage_id: int
    match_code: str
    team_a: str
    team_b: str
    round_number: int
    bracket_side: Optional[str] = None
    bracket_position: Optional[int] = None
    next_match_code: Optional[str] = None
    next_match_slot: Optional[str] = None
    next_loser_match_code: Optional[str] = None
    next_loser_match_slot: Optional[str] = None
    is_bye: bool
    result_json: Optional[Dict[str, Any]] = None
    match_format: str
    played_at: Optional[datetime] = None


class BracketBuildRequest(BaseModel):
    seeded: bool = True
    replace: bool = False


class BracketRoundResponse(BaseModel):
    side: str
    round_number: int
    name: str
    matches: List[MatchResponse]


class BracketResponse(BaseModel):
    stage_id: int
    rounds: List[BracketRoundResponse]
    champion: Optional[str] = None
    setup_progress: Dict[str, int]
    is_ready: bool


@router.post("/tournaments/{tournament_id}/stages", response_model=StageResponse, status_code=201)
def create_stage(tournament_id: int, stage_data: StageCreate, session: Session = Depends(get_session)):
    """Create a stage (elimination or swiss) for a tournament"""
    require_tournament(session, tournament_id)

    data = stage_data.model_dump()
    data["match_format"] = stage_data.match_format.value
    data["final_format"] = stage_data.final_format.value if stage_data.final_format else None
    stage = Stage(tournament_id=tournament_id, **data)
    session.add(stage)
    session.commit()
    session.refresh(stage)
    logger.info("Created %s stage %s with %d teams", stage.format, stage.id, len(stage.teams))
    return stage


@router.get("/stages/{stage_id}", response_model=StageResponse)
def get_stage(stage_id: int, session: Session = Depends(get_session)):
    """Get a stage by ID"""
    return require_stage(session, stage_id)


def _bracket_response(stage: Stage, rows: Dict[str, Match]) -> BracketResponse:
    states = {code: advancement_service.row_to_state(row) for code, row in rows.items()}
    rounds = []
    for bracket_round in bracket_view.group_by_round(states):
        rounds.append(
            BracketRoundResponse(
                side=bracket_round.side.value,
                round_number=bracket_round.round_number,
                name=bracket_round.name,
                matches=[MatchResponse.model_validate(rows[m.id]) for m in bracket_round.matches],
            )
        )
    return BracketResponse(
        stage_id=stage.id,
        rounds=rounds,
        champion=bracket_view.champion(states),
        setup_progress=bracket_view.setup_progress(states),
        is_ready=bracket_view.is_bracket_ready(states),
    )


@router.post("/stages/{stage_id}/bracket", response_model=BracketResponse, status_code=201)
def build_bracket(
    stage_id: int,
    request: Optional[BracketBuildRequest] = None,
    session: Session = Depends(get_session),
) -> BracketResponse:
    """Build the full bracket for an elimination stage.
    seeded=true places the stage's teams in list order; seeded=false leaves real slots TBD."""
    stage = require_elimination_stage(session, stage_id)
    request = request or BracketBuildRequest()
    try:
        advancement_service.create_bracket(session, stage, seeded=request.seeded, replace=request.replace)
    except ProgressionError as exc:
        raise http_error(exc)
    return _bracket_response(stage, advancement_service.load_rows(session, stage.id))


@router.get("/stages/{stage_id}/bracket", response_model=BracketResponse)
def get_bracket(stage_id: int, session: Session = Depends(get_session)) -> BracketResponse:
    """Bracket rounds with display names, champion (if decided) and setup progress"""
    stage = require_elimination_stage(session, stage_id)
    rows = advancement_service.load_rows(session, stage.id)
    if not rows:
        raise HTTPException(status_code=404, detail="Bracket has not been built")
    return _bracket_response(stage, rows)
