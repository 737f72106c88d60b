"""
Stage Guards and Utilities

Provides reusable guards shared by the stage routers:
- Tournament / stage ownership lookups
- Format checks (elimination vs swiss)
- Translation of progression errors into HTTP errors
"""

from fastapi import HTTPException
from sqlmodel import Session

from bracketflow.models.stage import Stage
from bracketflow.models.tournament import Tournament
from bracketflow.services.progression_errors import (
    InvalidConfiguration,
    InvalidScore,
    InvalidWinner,
    MatchNotFound,
    PairingExhausted,
    ProgressionError,
    StaleTopology,
)

_STATUS_BY_ERROR = (
    (MatchNotFound, 404),
    (StaleTopology, 409),
    (PairingExhausted, 409),
    (InvalidConfiguration, 422),
    (InvalidWinner, 422),
    (InvalidScore, 422),
)


def require_tournament(session: Session, tournament_id: int) -> Tournament:
    """
    Load a tournament or raise 404.

    Raises:
        HTTPException 404: Tournament not found
    """
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise HTTPException(status_code=404, detail="Tournament not found")
    return tournament


def require_stage(session: Session, stage_id: int) -> Stage:
    """
    Load a stage or raise 404.

    Raises:
        HTTPException 404: Stage not found
    """
    stage = session.get(Stage, stage_id)
    if not stage:
        raise HTTPException(status_code=404, detail="Stage not found")
    return stage


def require_elimination_stage(session: Session, stage_id: int) -> Stage:
    stage = require_stage(session, stage_id)
    if not stage.is_elimination:
        raise HTTPException(status_code=400, detail=f"Stage {stage_id} is not an elimination stage")
    return stage


def require_swiss_stage(session: Session, stage_id: int) -> Stage:
    stage = require_stage(session, stage_id)
    if not stage.is_swiss:
        raise HTTPException(status_code=400, detail=f"Stage {stage_id} is not a swiss stage")
    return stage


def http_error(exc: ProgressionError) -> HTTPException:
    """Map a progression error to the HTTPException the routers raise."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))
