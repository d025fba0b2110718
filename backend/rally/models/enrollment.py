from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import JSON
from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from rally.models.tournament import Tournament


class Enrollment(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("tournament_id", "player_id", name="uq_enrollment_tournament_player"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    player_id: int = Field(foreign_key="player.id")
    partner_id: Optional[int] = Field(default=None, foreign_key="player.id")  # doubles only

    seed: Optional[int] = Field(default=None)
    seed_overridden: bool = Field(default=False)

    # Swiss bookkeeping; opponents is the ordered list of prior opponent enrollment ids
    swiss_points: int = Field(default=0)
    swiss_opponents: List[int] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    swiss_bye_count: int = Field(default=0)

    # Group stage bookkeeping
    group_id: Optional[int] = Field(default=None, foreign_key="tournamentgroup.id")
    group_points: int = Field(default=0)
    group_wins: int = Field(default=0)
    group_losses: int = Field(default=0)
    group_point_diff: int = Field(default=0)

    is_active: bool = Field(default=True)
    eliminated_at: Optional[datetime] = Field(default=None)
    final_placement: Optional[int] = Field(default=None)
    enrolled_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    tournament: "Tournament" = Relationship(back_populates="enrollments")
