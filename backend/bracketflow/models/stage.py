from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import JSON
from sqlmodel import Column, Field, Relationship, SQLModel

from bracketflow.utils.clock import utc_now

if TYPE_CHECKING:
    from bracketflow.models.match import Match
    from bracketflow.models.tournament import Tournament

FORMAT_SINGLE_ELIMINATION = "single_elimination"
FORMAT_DOUBLE_ELIMINATION = "double_elimination"
FORMAT_SWISS = "swiss"
STAGE_FORMATS = (FORMAT_SINGLE_ELIMINATION, FORMAT_DOUBLE_ELIMINATION, FORMAT_SWISS)


class Stage(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id")
    name: str
    format: str  # single_elimination | double_elimination | swiss
    match_format: str = Field(default="BO3")
    final_format: Optional[str] = Field(default="BO5")  # elimination only
    teams: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))

    # Swiss thresholds (null for elimination stages)
    qualify_at: Optional[int] = Field(default=None)
    eliminate_at: Optional[int] = Field(default=None)
    # Explicit Swiss round counter; 0 until the first round is created
    current_round: int = Field(default=0)

    created_at: datetime = Field(default_factory=utc_now)

    # Relationships
    tournament: "Tournament" = Relationship(back_populates="stages")
    matches: List["Match"] = Relationship(back_populates="stage")

    @property
    def is_swiss(self) -> bool:
        return self.format == FORMAT_SWISS

    @property
    def is_elimination(self) -> bool:
        return self.format in (FORMAT_SINGLE_ELIMINATION, FORMAT_DOUBLE_ELIMINATION)
