from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, field_validator
from sqlmodel import Session, select

from rally.database import get_session
from rally.models.player import Player
from rally.services.casual_matches import player_record

router = APIRouter()


class PlayerCreate(BaseModel):
    name: str

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("name is required")
        return v.strip()


class PlayerResponse(BaseModel):
    id: int
    name: str
    rating: int
    xp: int
    level: int
    matches_played: int
    matches_won: int
    current_streak: int
    best_streak: int
    tournament_matches_played: int
    tournament_matches_won: int
    tournament_current_streak: int
    tournament_best_streak: int
    tournaments_played: int
    tournaments_won: int
    created_at: datetime

    class Config:
        from_attributes = True


class PlayerDetailResponse(PlayerResponse):
    tier: str
    win_rate: Optional[float] = None
    tournament_win_rate: Optional[float] = None


@router.post("/players", response_model=PlayerResponse, status_code=201)
def create_player(payload: PlayerCreate, session: Session = Depends(get_session)):
    player = Player(name=payload.name)
    session.add(player)
    session.commit()
    session.refresh(player)
    return player


@router.get("/players", response_model=List[PlayerResponse])
def list_players(session: Session = Depends(get_session)):
    """Leaderboard order: rating, then name."""
    return session.exec(select(Player).order_by(Player.rating.desc(), Player.name)).all()


@router.get("/players/{player_id}", response_model=PlayerDetailResponse)
def get_player(player_id: int, session: Session = Depends(get_session)):
    player = session.get(Player, player_id)
    if not player:
        raise HTTPException(status_code=404, detail=f"PLAYER_NOT_FOUND: Player {player_id} not found")
    data = PlayerResponse.model_validate(player).model_dump()
    return PlayerDetailResponse(**data, **player_record(player))
