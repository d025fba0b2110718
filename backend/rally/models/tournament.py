from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import String
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from rally.models.enrollment import Enrollment
    from rally.models.group import TournamentGroup
    from rally.models.match import TournamentMatch
    from rally.models.round import Round

TOURNAMENT_DRAFT = "draft"
TOURNAMENT_ENROLLMENT = "enrollment"
TOURNAMENT_IN_PROGRESS = "in_progress"
TOURNAMENT_COMPLETED = "completed"
TOURNAMENT_CANCELLED = "cancelled"


class TournamentFormat(str, Enum):
    single_elimination = "single_elimination"
    double_elimination = "double_elimination"
    swiss = "swiss"
    round_robin_knockout = "round_robin_knockout"


class MatchType(str, Enum):
    singles = "singles"
    doubles = "doubles"


class Tournament(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    description: Optional[str] = None
    format: TournamentFormat = Field(sa_column=Column(String, nullable=False))
    match_type: MatchType = Field(default=MatchType.singles, sa_column=Column(String, nullable=False))
    status: str = Field(default=TOURNAMENT_DRAFT)  # "draft" | "enrollment" | "in_progress" | "completed" | "cancelled"

    # Rating multipliers in percent (150 = 1.5x)
    base_elo_multiplier: int = Field(default=150)
    finals_elo_multiplier: int = Field(default=300)

    # Best-of hierarchy: tournament default, then per-stage overrides
    default_best_of: int = Field(default=1)
    group_stage_best_of: Optional[int] = Field(default=None)
    early_rounds_best_of: Optional[int] = Field(default=None)
    semifinals_best_of: Optional[int] = Field(default=None)
    finals_best_of: Optional[int] = Field(default=None)

    # Format options
    swiss_rounds: Optional[int] = Field(default=None)
    group_count: Optional[int] = Field(default=None)
    advance_per_group: Optional[int] = Field(default=None)
    grand_final_reset: bool = Field(default=True)

    current_round: Optional[int] = Field(default=None)
    total_rounds: Optional[int] = Field(default=None)
    max_participants: Optional[int] = Field(default=None)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})
    started_at: Optional[datetime] = Field(default=None)
    completed_at: Optional[datetime] = Field(default=None)

    # Relationships
    enrollments: List["Enrollment"] = Relationship(back_populates="tournament")
    groups: List["TournamentGroup"] = Relationship(back_populates="tournament")
    rounds: List["Round"] = Relationship(back_populates="tournament")
    matches: List["TournamentMatch"] = Relationship(back_populates="tournament")
