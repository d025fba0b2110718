from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel, field_validator
from sqlmodel import Session, select

from rally.database import get_session
from rally.models.game_result import GameResult
from rally.services import match_results
from rally.services.errors import TournamentError, raise_http
from rally.utils.guards import require_match

router = APIRouter()


class TournamentMatchResponse(BaseModel):
    id: int
    tournament_id: int
    round_id: int
    round_number: int
    position: int
    bracket_segment: str
    group_id: Optional[int] = None
    is_bracket_reset: bool
    participant_a_id: Optional[int] = None
    participant_b_id: Optional[int] = None
    source_match_a_id: Optional[int] = None
    source_match_b_id: Optional[int] = None
    source_a_role: Optional[str] = None
    source_b_role: Optional[str] = None
    winner_id: Optional[int] = None
    scores: Optional[List[Dict[str, Any]]] = None
    series_score: Optional[str] = None
    best_of: Optional[int] = None
    elo_multiplier: int
    status: str
    is_walkover: bool
    walkover_reason: Optional[str] = None
    is_next_match: bool
    played_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class GameScore(BaseModel):
    a: int
    b: int

    @field_validator("a", "b")
    @classmethod
    def validate_non_negative(cls, v):
        if v < 0:
            raise ValueError("scores cannot be negative")
        return v


class ResultRequest(BaseModel):
    winner_id: int
    # List of {"a": 11, "b": 7} objects, or the text form "11-7, 9-11, 11-5"
    games: Union[List[GameScore], str]


class QuickResultRequest(BaseModel):
    winner_id: int
    series_score: str


class WalkoverRequest(BaseModel):
    winner_id: int
    reason: str

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v):
        if v not in match_results.WALKOVER_REASONS:
            raise ValueError(f"reason must be one of {', '.join(match_results.WALKOVER_REASONS)}")
        return v


class BestOfRequest(BaseModel):
    best_of: Optional[int] = None


class MatchOutcomeResponse(BaseModel):
    match: TournamentMatchResponse
    winner_id: int
    loser_id: int
    rating_changes: Dict[int, int]
    game_results_created: int
    tournament_completed: bool
    next_match_id: Optional[int] = None


class GameResultResponse(BaseModel):
    id: int
    game_number: Optional[int] = None
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


def _outcome_response(session: Session, outcome: match_results.MatchOutcome) -> MatchOutcomeResponse:
    match = require_match(session, outcome.match_id)
    session.refresh(match)
    return MatchOutcomeResponse(
        match=TournamentMatchResponse.model_validate(match),
        winner_id=outcome.winner_id,
        loser_id=outcome.loser_id,
        rating_changes=outcome.rating_changes,
        game_results_created=outcome.game_results_created,
        tournament_completed=outcome.tournament_completed,
        next_match_id=outcome.next_match_id,
    )


@router.get("/tournament-matches/{match_id}", response_model=TournamentMatchResponse)
def get_match(match_id: int, session: Session = Depends(get_session)):
    try:
        return require_match(session, match_id)
    except TournamentError as exc:
        raise_http(exc)


@router.get("/tournament-matches/{match_id}/games", response_model=List[GameResultResponse])
def list_match_games(match_id: int, session: Session = Depends(get_session)):
    try:
        require_match(session, match_id)
    except TournamentError as exc:
        raise_http(exc)
    return session.exec(
        select(GameResult).where(GameResult.tournament_match_id == match_id).order_by(GameResult.game_number)
    ).all()


@router.post("/tournament-matches/{match_id}/result", response_model=MatchOutcomeResponse)
def record_result(match_id: int, payload: ResultRequest, session: Session = Depends(get_session)):
    """Record a series game by game; ratings move after every game."""
    games = payload.games if isinstance(payload.games, str) else [g.model_dump() for g in payload.games]
    try:
        outcome = match_results.record_tournament_match_result(session, match_id, payload.winner_id, games)
        session.commit()
    except TournamentError as exc:
        session.rollback()
        raise_http(exc)
    return _outcome_response(session, outcome)


@router.post("/tournament-matches/{match_id}/quick-result", response_model=MatchOutcomeResponse)
def record_quick_result(match_id: int, payload: QuickResultRequest, session: Session = Depends(get_session)):
    try:
        outcome = match_results.record_quick_result(session, match_id, payload.winner_id, payload.series_score)
        session.commit()
    except TournamentError as exc:
        session.rollback()
        raise_http(exc)
    return _outcome_response(session, outcome)


@router.post("/tournament-matches/{match_id}/walkover", response_model=MatchOutcomeResponse)
def record_walkover(match_id: int, payload: WalkoverRequest, session: Session = Depends(get_session)):
    try:
        outcome = match_results.record_walkover(session, match_id, payload.winner_id, payload.reason)
        session.commit()
    except TournamentError as exc:
        session.rollback()
        raise_http(exc)
    return _outcome_response(session, outcome)


@router.put("/tournament-matches/{match_id}/best-of")
def set_best_of(match_id: int, payload: BestOfRequest, session: Session = Depends(get_session)) -> Dict[str, Optional[int]]:
    """Set or clear (null) the per-match best-of override."""
    try:
        match_results.set_match_best_of(session, match_id, payload.best_of)
        session.commit()
        return match_results.get_match_effective_best_of(session, match_id)
    except TournamentError as exc:
        session.rollback()
        raise_http(exc)


@router.get("/tournament-matches/{match_id}/best-of")
def get_best_of(match_id: int, session: Session = Depends(get_session)) -> Dict[str, Optional[int]]:
    try:
        return match_results.get_match_effective_best_of(session, match_id)
    except TournamentError as exc:
        raise_http(exc)
