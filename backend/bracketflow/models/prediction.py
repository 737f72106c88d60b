from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

from bracketflow.utils.clock import utc_now

if TYPE_CHECKING:
    from bracketflow.models.match import Match


class Prediction(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("match_id", "user_id", name="uq_prediction_match_user"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    match_id: int = Field(foreign_key="match.id")
    user_id: str
    predicted_winner: str
    predicted_score: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=utc_now)

    # Relationships
    match: "Match" = Relationship(back_populates="predictions")
