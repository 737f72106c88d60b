"""
Swiss stages: standings, record buckets, pairing preview and round creation.
Standings are recomputed from the stage's matches on every request.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlmodel import Session

from bracketflow.database import get_session
from bracketflow.routes.stages import MatchResponse
from bracketflow.services import advancement_service
from bracketflow.services.progression_errors import ProgressionError
from bracketflow.services.swiss_pairing import SwissPairing
from bracketflow.utils.stage_guards import http_error, require_swiss_stage

router = APIRouter()


class StandingResponse(BaseModel):
    rank: int
    team: str
    wins: int
    losses: int
    record: str
    points: int
    buchholz: int
    byes: int
    status: str
    opponents: List[str]


class BucketTeamResponse(BaseModel):
    team: str
    wins: int
    losses: int
    status: str
    next_match_stake: str


class BucketResponse(BaseModel):
    record: str
    is_qualified: bool
    is_eliminated: bool
    teams: List[BucketTeamResponse]


class PairingResponse(BaseModel):
    team_a: str
    team_b: Optional[str]
    is_bye: bool
    is_rematch: bool


class PairingPreviewResponse(BaseModel):
    round_number: int
    pairings: List[PairingResponse]


class SwissRoundRequest(BaseModel):
    strict: bool = False


class SwissRoundResponse(BaseModel):
    round_number: int
    pairings: List[PairingResponse]
    matches: List[MatchResponse]


def _pairing(p: SwissPairing) -> PairingResponse:
    return PairingResponse(team_a=p.team_a, team_b=p.team_b, is_bye=p.is_bye, is_rematch=p.is_rematch)


@router.get("/stages/{stage_id}/swiss/standings", response_model=List[StandingResponse])
def get_swiss_standings(stage_id: int, session: Session = Depends(get_session)) -> List[StandingResponse]:
    """Ranked standings: points desc, Buchholz desc, team name asc"""
    stage = require_swiss_stage(session, stage_id)
    try:
        standings = advancement_service.stage_standings(session, stage)
    except ProgressionError as exc:
        raise http_error(exc)
    return [
        StandingResponse(
            rank=rank,
            team=s.team,
            wins=s.wins,
            losses=s.losses,
            record=s.record,
            points=s.points,
            buchholz=s.buchholz,
            byes=s.byes,
            status=s.status.value,
            opponents=list(s.opponent_history),
        )
        for rank, s in enumerate(standings, start=1)
    ]


@router.get("/stages/{stage_id}/swiss/buckets", response_model=List[BucketResponse])
def get_swiss_buckets(stage_id: int, session: Session = Depends(get_session)) -> List[BucketResponse]:
    """Teams grouped by W-L record, with what each team's next match decides"""
    stage = require_swiss_stage(session, stage_id)
    try:
        buckets = advancement_service.stage_record_buckets(session, stage)
    except ProgressionError as exc:
        raise http_error(exc)
    return [
        BucketResponse(
            record=b.record,
            is_qualified=b.is_qualified,
            is_eliminated=b.is_eliminated,
            teams=[
                BucketTeamResponse(
                    team=e.team,
                    wins=e.wins,
                    losses=e.losses,
                    status=e.status.value,
                    next_match_stake=e.next_match_stake.value,
                )
                for e in b.teams
            ],
        )
        for b in buckets
    ]


@router.get("/stages/{stage_id}/swiss/pairings", response_model=PairingPreviewResponse)
def preview_swiss_pairings(
    stage_id: int,
    strict: bool = Query(False, description="Fail instead of emitting a flagged rematch"),
    session: Session = Depends(get_session),
) -> PairingPreviewResponse:
    """Preview next-round pairings without storing anything"""
    stage = require_swiss_stage(session, stage_id)
    try:
        pairings = advancement_service.preview_pairings(session, stage, strict=strict)
    except ProgressionError as exc:
        raise http_error(exc)
    return PairingPreviewResponse(round_number=stage.current_round + 1, pairings=[_pairing(p) for p in pairings])


@router.post("/stages/{stage_id}/swiss/rounds", response_model=SwissRoundResponse, status_code=201)
def create_swiss_round(
    stage_id: int,
    request: Optional[SwissRoundRequest] = None,
    session: Session = Depends(get_session),
) -> SwissRoundResponse:
    """Pair and store the next round. The current round must be fully played."""
    stage = require_swiss_stage(session, stage_id)
    request = request or SwissRoundRequest()
    try:
        round_number, pairings, rows = advancement_service.create_swiss_round(session, stage, strict=request.strict)
    except ProgressionError as exc:
        raise http_error(exc)
    return SwissRoundResponse(
        round_number=round_number,
        pairings=[_pairing(p) for p in pairings],
        matches=[MatchResponse.model_validate(row) for row in rows],
    )
