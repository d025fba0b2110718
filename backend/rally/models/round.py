from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from rally.models.match import TournamentMatch
    from rally.models.tournament import Tournament

SEGMENT_WINNERS = "winners"
SEGMENT_LOSERS = "losers"
SEGMENT_FINALS = "finals"
SEGMENT_GROUP = "group"
SEGMENT_SWISS = "swiss_round"


class Round(SQLModel, table=True):
    __table_args__ = (
        SAUniqueConstraint("tournament_id", "round_number", "bracket_segment", name="uq_round_tournament_number_segment"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    round_number: int
    name: str
    bracket_segment: str  # "winners" | "losers" | "finals" | "group" | "swiss_round"
    elo_multiplier: int = Field(default=100)
    best_of: Optional[int] = Field(default=None)

    # Relationships
    tournament: "Tournament" = Relationship(back_populates="rounds")
    matches: List["TournamentMatch"] = Relationship(back_populates="round")
