from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import JSON
from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from rally.models.round import Round
    from rally.models.tournament import Tournament

MATCH_PENDING = "pending"
MATCH_READY = "ready"
MATCH_IN_PROGRESS = "in_progress"
MATCH_COMPLETED = "completed"
MATCH_BYE = "bye"
MATCH_WALKOVER = "walkover"

TERMINAL_STATUSES = (MATCH_COMPLETED, MATCH_BYE, MATCH_WALKOVER)

ROLE_WINNER = "WINNER"
ROLE_LOSER = "LOSER"


class TournamentMatch(SQLModel, table=True):
    __table_args__ = (
        SAUniqueConstraint("tournament_id", "round_id", "position", name="uq_tournament_match_round_position"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    round_id: int = Field(foreign_key="round.id")
    round_number: int
    position: int  # 1-based within the round
    bracket_segment: str  # mirrors Round.bracket_segment
    group_id: Optional[int] = Field(default=None, foreign_key="tournamentgroup.id")
    is_bracket_reset: bool = Field(default=False)

    # Participants are enrollment ids
    participant_a_id: Optional[int] = Field(default=None, foreign_key="enrollment.id")
    participant_b_id: Optional[int] = Field(default=None, foreign_key="enrollment.id")

    # Advance-from references: upstream match -> slot, with the role that feeds it
    source_match_a_id: Optional[int] = Field(default=None, foreign_key="tournamentmatch.id")
    source_match_b_id: Optional[int] = Field(default=None, foreign_key="tournamentmatch.id")
    source_a_role: Optional[str] = Field(default=None)  # "WINNER" | "LOSER"
    source_b_role: Optional[str] = Field(default=None)

    winner_id: Optional[int] = Field(default=None, foreign_key="enrollment.id")
    scores: Optional[List[Dict[str, Any]]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    series_score: Optional[str] = Field(default=None)  # quick results, e.g. "2-1"
    best_of: Optional[int] = Field(default=None)
    elo_multiplier: int = Field(default=100)

    status: str = Field(default=MATCH_PENDING)  # pending | ready | in_progress | completed | bye | walkover
    is_walkover: bool = Field(default=False)
    walkover_reason: Optional[str] = Field(default=None)  # forfeit | no_show | disqualification
    is_next_match: bool = Field(default=False)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    played_at: Optional[datetime] = Field(default=None)

    # Relationships
    tournament: "Tournament" = Relationship(back_populates="matches")
    round: "Round" = Relationship(back_populates="matches")

    def loser_id(self) -> Optional[int]:
        if self.winner_id is None:
            return None
        if self.winner_id == self.participant_a_id:
            return self.participant_b_id
        return self.participant_a_id
