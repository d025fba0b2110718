from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, field_validator, model_validator
from sqlmodel import Session, select

from rally.database import get_session
from rally.models.enrollment import Enrollment
from rally.models.group import TournamentGroup
from rally.models.match import TournamentMatch
from rally.models.round import Round
from rally.models.tournament import (
    TOURNAMENT_DRAFT,
    TOURNAMENT_ENROLLMENT,
    MatchType,
    Tournament,
    TournamentFormat,
)
from rally.routes.tournament_matches import TournamentMatchResponse
from rally.services import advancement_service, stage_progression
from rally.services.best_of import VALID_BEST_OF
from rally.services.errors import TournamentError, raise_http
from rally.utils.guards import require_tournament, require_tournament_status

router = APIRouter()


def _check_best_of(v: Optional[int]) -> Optional[int]:
    if v is not None and v not in VALID_BEST_OF:
        raise ValueError(f"best-of must be one of {VALID_BEST_OF}")
    return v


class TournamentCreate(BaseModel):
    name: str
    description: Optional[str] = None
    format: TournamentFormat
    match_type: MatchType = MatchType.singles
    base_elo_multiplier: int = 150
    finals_elo_multiplier: int = 300
    default_best_of: int = 1
    group_stage_best_of: Optional[int] = None
    early_rounds_best_of: Optional[int] = None
    semifinals_best_of: Optional[int] = None
    finals_best_of: Optional[int] = None
    swiss_rounds: Optional[int] = None
    group_count: Optional[int] = None
    advance_per_group: Optional[int] = None
    grand_final_reset: bool = True
    max_participants: Optional[int] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("name is required")
        return v.strip()

    @field_validator("default_best_of", "group_stage_best_of", "early_rounds_best_of", "semifinals_best_of", "finals_best_of")
    @classmethod
    def validate_best_of(cls, v):
        return _check_best_of(v)

    @field_validator("swiss_rounds", "group_count", "advance_per_group", "max_participants")
    @classmethod
    def validate_positive(cls, v):
        if v is not None and v < 1:
            raise ValueError("must be at least 1")
        return v

    @model_validator(mode="after")
    def validate_multipliers(self):
        if self.base_elo_multiplier < 1 or self.finals_elo_multiplier < 1:
            raise ValueError("rating multipliers must be positive percentages")
        return self


class TournamentUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    base_elo_multiplier: Optional[int] = None
    finals_elo_multiplier: Optional[int] = None
    default_best_of: Optional[int] = None
    group_stage_best_of: Optional[int] = None
    early_rounds_best_of: Optional[int] = None
    semifinals_best_of: Optional[int] = None
    finals_best_of: Optional[int] = None
    swiss_rounds: Optional[int] = None
    group_count: Optional[int] = None
    advance_per_group: Optional[int] = None
    grand_final_reset: Optional[bool] = None
    max_participants: Optional[int] = None

    @field_validator("default_best_of", "group_stage_best_of", "early_rounds_best_of", "semifinals_best_of", "finals_best_of")
    @classmethod
    def validate_best_of(cls, v):
        return _check_best_of(v)


class TournamentResponse(BaseModel):
    id: int
    name: str
    description: Optional[str]
    format: TournamentFormat
    match_type: MatchType
    status: str
    base_elo_multiplier: int
    finals_elo_multiplier: int
    default_best_of: int
    group_stage_best_of: Optional[int] = None
    early_rounds_best_of: Optional[int] = None
    semifinals_best_of: Optional[int] = None
    finals_best_of: Optional[int] = None
    swiss_rounds: Optional[int] = None
    group_count: Optional[int] = None
    advance_per_group: Optional[int] = None
    grand_final_reset: bool
    current_round: Optional[int] = None
    total_rounds: Optional[int] = None
    max_participants: Optional[int] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class StageResponse(BaseModel):
    tournament: TournamentResponse
    rounds_created: int
    matches_created: int
    total_rounds: Optional[int]
    completed: bool = False


class NextMatchRequest(BaseModel):
    match_id: int


class RoundResponse(BaseModel):
    id: int
    round_number: int
    name: str
    bracket_segment: str
    elo_multiplier: int
    best_of: Optional[int]
    matches: List[TournamentMatchResponse]


class GroupStandingRow(BaseModel):
    enrollment_id: int
    points: int
    wins: int
    losses: int
    point_diff: int


class GroupResponse(BaseModel):
    id: int
    name: str
    standings: List[GroupStandingRow]


class BracketResponse(BaseModel):
    tournament: TournamentResponse
    rounds: List[RoundResponse]
    groups: List[GroupResponse] = []
    next_match_id: Optional[int] = None


def _stage_response(session: Session, result: stage_progression.StageResult) -> StageResponse:
    tournament = session.get(Tournament, result.tournament_id)
    return StageResponse(
        tournament=TournamentResponse.model_validate(tournament),
        rounds_created=result.rounds_created,
        matches_created=result.matches_created,
        total_rounds=result.total_rounds,
        completed=result.completed,
    )


@router.post("/tournaments", response_model=TournamentResponse, status_code=201)
def create_tournament(payload: TournamentCreate, session: Session = Depends(get_session)):
    tournament = Tournament(**payload.model_dump())
    session.add(tournament)
    session.commit()
    session.refresh(tournament)
    return tournament


@router.get("/tournaments", response_model=List[TournamentResponse])
def list_tournaments(status: Optional[str] = None, session: Session = Depends(get_session)):
    stmt = select(Tournament)
    if status:
        stmt = stmt.where(Tournament.status == status)
    return session.exec(stmt.order_by(Tournament.created_at.desc(), Tournament.id.desc())).all()


@router.get("/tournaments/{tournament_id}", response_model=TournamentResponse)
def get_tournament(tournament_id: int, session: Session = Depends(get_session)):
    try:
        return require_tournament(session, tournament_id)
    except TournamentError as exc:
        raise_http(exc)


@router.patch("/tournaments/{tournament_id}", response_model=TournamentResponse)
def update_tournament(tournament_id: int, payload: TournamentUpdate, session: Session = Depends(get_session)):
    """Settings can change until the tournament starts."""
    try:
        tournament = require_tournament(session, tournament_id)
        require_tournament_status(tournament, TOURNAMENT_DRAFT, TOURNAMENT_ENROLLMENT, action="update settings")
    except TournamentError as exc:
        raise_http(exc)

    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(tournament, key, value)
    tournament.updated_at = datetime.utcnow()
    session.add(tournament)
    session.commit()
    session.refresh(tournament)
    return tournament


@router.delete("/tournaments/{tournament_id}", status_code=204)
def delete_tournament(tournament_id: int, session: Session = Depends(get_session)):
    """Delete a draft or cancelled tournament and its enrollments"""
    try:
        stage_progression.delete_tournament(session, tournament_id)
        session.commit()
    except TournamentError as exc:
        session.rollback()
        raise_http(exc)
    return Response(status_code=204)


@router.post("/tournaments/{tournament_id}/open-enrollment", response_model=TournamentResponse)
def open_enrollment(tournament_id: int, session: Session = Depends(get_session)):
    try:
        tournament = stage_progression.open_enrollment(session, tournament_id)
        session.commit()
    except TournamentError as exc:
        session.rollback()
        raise_http(exc)
    session.refresh(tournament)
    return tournament


@router.post("/tournaments/{tournament_id}/cancel", response_model=TournamentResponse)
def cancel_tournament(tournament_id: int, session: Session = Depends(get_session)):
    try:
        tournament = stage_progression.cancel_tournament(session, tournament_id)
        session.commit()
    except TournamentError as exc:
        session.rollback()
        raise_http(exc)
    session.refresh(tournament)
    return tournament


@router.post("/tournaments/{tournament_id}/start", response_model=StageResponse)
def start_tournament(tournament_id: int, session: Session = Depends(get_session)):
    """Seed the field and generate the opening stage in one transaction."""
    try:
        result = stage_progression.start_tournament(session, tournament_id)
        session.commit()
    except TournamentError as exc:
        session.rollback()
        raise_http(exc)
    return _stage_response(session, result)


@router.post("/tournaments/{tournament_id}/swiss/next-round", response_model=StageResponse)
def generate_next_swiss_round(tournament_id: int, session: Session = Depends(get_session)):
    try:
        result = stage_progression.generate_next_swiss_round(session, tournament_id)
        session.commit()
    except TournamentError as exc:
        session.rollback()
        raise_http(exc)
    return _stage_response(session, result)


@router.post("/tournaments/{tournament_id}/knockout", response_model=StageResponse)
def generate_knockout_stage(tournament_id: int, session: Session = Depends(get_session)):
    try:
        result = stage_progression.generate_knockout_stage(session, tournament_id)
        session.commit()
    except TournamentError as exc:
        session.rollback()
        raise_http(exc)
    return _stage_response(session, result)


@router.put("/tournaments/{tournament_id}/next-match", response_model=TournamentMatchResponse)
def set_next_match(tournament_id: int, payload: NextMatchRequest, session: Session = Depends(get_session)):
    """Pin a ready match as the next one to be played."""
    try:
        require_tournament(session, tournament_id)
        match = advancement_service.set_next_match(session, tournament_id, payload.match_id)
        session.commit()
    except TournamentError as exc:
        session.rollback()
        raise_http(exc)
    session.refresh(match)
    return match


@router.post("/tournaments/{tournament_id}/resolve-dependencies")
def resolve_dependencies(tournament_id: int, session: Session = Depends(get_session)) -> Dict[str, Any]:
    """Repair: re-run advancement for every finished match. Idempotent."""
    try:
        require_tournament(session, tournament_id)
        counts = advancement_service.resolve_all_dependencies(session, tournament_id)
        tournament = session.get(Tournament, tournament_id)
        advancement_service.refresh_current_round(session, tournament)
        session.commit()
    except TournamentError as exc:
        session.rollback()
        raise_http(exc)
    return counts


@router.get("/tournaments/{tournament_id}/bracket", response_model=BracketResponse)
def get_bracket(tournament_id: int, session: Session = Depends(get_session)):
    try:
        tournament = require_tournament(session, tournament_id)
    except TournamentError as exc:
        raise_http(exc)

    rounds = session.exec(
        select(Round).where(Round.tournament_id == tournament_id).order_by(Round.round_number, Round.id)
    ).all()
    matches = session.exec(
        select(TournamentMatch)
        .where(TournamentMatch.tournament_id == tournament_id)
        .order_by(TournamentMatch.round_number, TournamentMatch.position)
    ).all()
    by_round: Dict[int, List[TournamentMatch]] = {}
    for m in matches:
        by_round.setdefault(m.round_id, []).append(m)

    groups: List[GroupResponse] = []
    if tournament.format == TournamentFormat.round_robin_knockout:
        standings = stage_progression.group_standings(session, tournament_id)
        for group in session.exec(
            select(TournamentGroup)
            .where(TournamentGroup.tournament_id == tournament_id)
            .order_by(TournamentGroup.display_order)
        ).all():
            groups.append(
                GroupResponse(
                    id=group.id,
                    name=group.name,
                    standings=[
                        GroupStandingRow(
                            enrollment_id=r.enrollment_id,
                            points=r.points,
                            wins=r.wins,
                            losses=r.losses,
                            point_diff=r.point_diff,
                        )
                        for r in standings.get(group.id, [])
                    ],
                )
            )

    return BracketResponse(
        tournament=TournamentResponse.model_validate(tournament),
        rounds=[
            RoundResponse(
                id=r.id,
                round_number=r.round_number,
                name=r.name,
                bracket_segment=r.bracket_segment,
                elo_multiplier=r.elo_multiplier,
                best_of=r.best_of,
                matches=[TournamentMatchResponse.model_validate(m) for m in by_round.get(r.id, [])],
            )
            for r in rounds
        ],
        groups=groups,
        next_match_id=next((m.id for m in matches if m.is_next_match), None),
    )


@router.get("/tournaments/{tournament_id}/standings")
def get_standings(tournament_id: int, session: Session = Depends(get_session)) -> List[Dict[str, Any]]:
    """Enrollments with placement and stage bookkeeping, best placement first."""
    try:
        require_tournament(session, tournament_id)
    except TournamentError as exc:
        raise_http(exc)
    enrollments = session.exec(select(Enrollment).where(Enrollment.tournament_id == tournament_id)).all()
    ordered = sorted(
        enrollments,
        key=lambda e: (e.final_placement is None, e.final_placement or 0, -e.swiss_points, -e.group_points, e.seed or 0),
    )
    return [
        {
            "enrollment_id": e.id,
            "player_id": e.player_id,
            "partner_id": e.partner_id,
            "seed": e.seed,
            "final_placement": e.final_placement,
            "swiss_points": e.swiss_points,
            "group_points": e.group_points,
            "is_active": e.is_active,
            "eliminated": e.eliminated_at is not None,
        }
        for e in ordered
    ]
