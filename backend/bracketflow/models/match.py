from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import JSON, UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, Relationship, SQLModel

from bracketflow.utils.clock import utc_now

if TYPE_CHECKING:
    from bracketflow.models.prediction import Prediction
    from bracketflow.models.stage import Stage


class Match(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("stage_id", "match_code", name="uq_match_stage_code"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    stage_id: int = Field(foreign_key="stage.id")
    match_code: str  # W1M1 / L2M1 / GF / S3M4

    # Team names or the "TBD" / "BYE" sentinels
    team_a: str = Field(default="TBD")
    team_b: str = Field(default="TBD")

    round_number: int = Field(default=1)
    bracket_side: Optional[str] = Field(default=None)  # winners | losers | grand_final; null for Swiss
    bracket_position: Optional[int] = Field(default=None)

    # Advancement edges (by match_code within the same stage)
    next_match_code: Optional[str] = Field(default=None)
    next_match_slot: Optional[str] = Field(default=None)  # team_a | team_b
    next_loser_match_code: Optional[str] = Field(default=None)
    next_loser_match_slot: Optional[str] = Field(default=None)

    is_bye: bool = Field(default=False)
    result_json: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))  # {winner, score}
    match_format: str = Field(default="BO3")

    played_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=utc_now)

    # Relationships
    stage: "Stage" = Relationship(back_populates="matches")
    predictions: List["Prediction"] = Relationship(back_populates="match")
