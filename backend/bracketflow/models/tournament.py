from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlmodel import Field, Relationship, SQLModel

from bracketflow.utils.clock import utc_now

if TYPE_CHECKING:
    from bracketflow.models.stage import Stage


class Tournament(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    game: Optional[str] = None  # "valorant", "cs2", ...
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now, sa_column_kwargs={"onupdate": utc_now})

    # Relationships
    stages: List["Stage"] = Relationship(back_populates="tournament")
