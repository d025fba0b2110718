from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel


class GameResult(SQLModel, table=True):
    """One played game. Casual games have no tournament match; doubles games carry the partners."""

    id: Optional[int] = Field(default=None, primary_key=True)
    winner_id: int = Field(foreign_key="player.id")
    loser_id: int = Field(foreign_key="player.id")
    winner_partner_id: Optional[int] = Field(default=None, foreign_key="player.id")
    loser_partner_id: Optional[int] = Field(default=None, foreign_key="player.id")
    winner_score: int
    loser_score: int
    rating_change: int
    tournament_match_id: Optional[int] = Field(default=None, foreign_key="tournamentmatch.id", index=True)
    game_number: Optional[int] = Field(default=None)
    logged_at: datetime = Field(default_factory=datetime.utcnow)
