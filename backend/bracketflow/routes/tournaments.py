from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, field_validator
from sqlmodel import Session, select

from bracketflow.database import get_session
from bracketflow.models.tournament import Tournament
from bracketflow.utils.clock import utc_now
from bracketflow.utils.stage_guards import require_tournament

router = APIRouter()


class TournamentCreate(BaseModel):
    name: str
    game: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("name is required")
        return v.strip()


class TournamentUpdate(BaseModel):
    name: Optional[str] = None
    game: Optional[str] = None
    notes: Optional[str] = None


class TournamentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    game: Optional[str]
    notes: Optional[str]
    created_at: datetime
    updated_at: datetime


@router.get("/tournaments", response_model=List[TournamentResponse])
def list_tournaments(session: Session = Depends(get_session)):
    """List all tournaments"""
    tournaments = session.exec(select(Tournament).order_by(Tournament.id)).all()
    return tournaments


@router.post("/tournaments", response_model=TournamentResponse, status_code=201)
def create_tournament(tournament_data: TournamentCreate, session: Session = Depends(get_session)):
    """Create a new tournament"""
    tournament = Tournament(**tournament_data.model_dump())
    session.add(tournament)
    session.commit()
    session.refresh(tournament)
    return tournament


@router.get("/tournaments/{tournament_id}", response_model=TournamentResponse)
def get_tournament(tournament_id: int, session: Session = Depends(get_session)):
    """Get a tournament by ID"""
    return require_tournament(session, tournament_id)


@router.put("/tournaments/{tournament_id}", response_model=TournamentResponse)
def update_tournament(tournament_id: int, tournament_data: TournamentUpdate, session: Session = Depends(get_session)):
    """Update tournament name/game/notes"""
    tournament = require_tournament(session, tournament_id)

    update_data = tournament_data.model_dump(exclude_unset=True)
    if "name" in update_data and (update_data["name"] is None or not update_data["name"].strip()):
        raise HTTPException(status_code=422, detail="name cannot be empty")
    for key, value in update_data.items():
        setattr(tournament, key, value)
    tournament.updated_at = utc_now()

    session.add(tournament)
    session.commit()
    session.refresh(tournament)
    return tournament
