"""
Casual match logging (outside any tournament).
"""
from datetime import datetime
from typing import Dict, List, Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, model_validator
from sqlmodel import Session, select

from rally.database import get_session
from rally.models.game_result import GameResult
from rally.services import casual_matches
from rally.services.errors import TournamentError, raise_http

router = APIRouter()


class CasualMatchRequest(BaseModel):
    match_type: Literal["singles", "doubles"] = "singles"
    winner_ids: List[int]
    loser_ids: List[int]
    winner_score: int
    loser_score: int

    @model_validator(mode="after")
    def validate_team_sizes(self):
        size = 1 if self.match_type == "singles" else 2
        if len(self.winner_ids) != size or len(self.loser_ids) != size:
            raise ValueError(f"{self.match_type} needs {size} player(s) per side")
        return self


class CasualMatchResponse(BaseModel):
    game_result_id: int
    rating_change: int
    ratings: Dict[int, int]


class GameResultRow(BaseModel):
    id: int
    winner_id: int
    loser_id: int
    winner_partner_id: Optional[int] = None
    loser_partner_id: Optional[int] = None
    winner_score: int
    loser_score: int
    rating_change: int
    logged_at: datetime

    class Config:
        from_attributes = True


@router.post("/matches", response_model=CasualMatchResponse, status_code=201)
def log_match(payload: CasualMatchRequest, session: Session = Depends(get_session)):
    try:
        if payload.match_type == "singles":
            result = casual_matches.log_singles_game(
                session, payload.winner_ids[0], payload.loser_ids[0], payload.winner_score, payload.loser_score
            )
        else:
            result = casual_matches.log_doubles_game(
                session, payload.winner_ids, payload.loser_ids, payload.winner_score, payload.loser_score
            )
        session.commit()
    except TournamentError as exc:
        session.rollback()
        raise_http(exc)
    return CasualMatchResponse(game_result_id=result.game_result_id, rating_change=result.change, ratings=result.ratings)


@router.get("/matches", response_model=List[GameResultRow])
def recent_matches(limit: int = 50, session: Session = Depends(get_session)):
    """Most recent casual games."""
    return session.exec(
        select(GameResult)
        .where(GameResult.tournament_match_id.is_(None))
        .order_by(GameResult.logged_at.desc(), GameResult.id.desc())
        .limit(min(max(limit, 1), 200))
    ).all()
