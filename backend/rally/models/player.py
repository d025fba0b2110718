from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

STARTING_RATING = 1000


class Player(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    rating: int = Field(default=STARTING_RATING)
    xp: int = Field(default=0)
    level: int = Field(default=1)

    # Casual (head-to-head) play
    matches_played: int = Field(default=0)
    matches_won: int = Field(default=0)
    current_streak: int = Field(default=0)  # consecutive wins, reset by a loss
    best_streak: int = Field(default=0)

    # Tournament play
    tournament_matches_played: int = Field(default=0)
    tournament_matches_won: int = Field(default=0)
    tournament_current_streak: int = Field(default=0)
    tournament_best_streak: int = Field(default=0)
    tournaments_played: int = Field(default=0)
    tournaments_won: int = Field(default=0)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})
