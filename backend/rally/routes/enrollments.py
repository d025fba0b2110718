from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, field_validator, model_validator
from sqlmodel import Session

from rally.database import get_session
from rally.services import enrollment_service
from rally.services.errors import TournamentError, raise_http

router = APIRouter()


class EnrollRequest(BaseModel):
    player_id: int
    partner_id: Optional[int] = None

    @model_validator(mode="after")
    def validate_partner(self):
        if self.partner_id is not None and self.partner_id == self.player_id:
            raise ValueError("partner_id must differ from player_id")
        return self


class SeedRequest(BaseModel):
    seed: int

    @field_validator("seed")
    @classmethod
    def validate_seed(cls, v):
        if v < 1:
            raise ValueError("seed must be 1 or greater")
        return v


class SwapSeedsRequest(BaseModel):
    first_enrollment_id: int
    second_enrollment_id: int


class EnrollmentResponse(BaseModel):
    id: int
    tournament_id: int
    player_id: int
    partner_id: Optional[int] = None
    seed: Optional[int] = None
    seed_overridden: bool
    swiss_points: int
    swiss_opponents: List[int]
    swiss_bye_count: int
    group_id: Optional[int] = None
    group_points: int
    group_wins: int
    group_losses: int
    group_point_diff: int
    is_active: bool
    eliminated_at: Optional[datetime] = None
    final_placement: Optional[int] = None
    enrolled_at: datetime

    class Config:
        from_attributes = True


@router.post("/tournaments/{tournament_id}/enrollments", response_model=EnrollmentResponse, status_code=201)
def enroll(tournament_id: int, payload: EnrollRequest, session: Session = Depends(get_session)):
    try:
        enrollment = enrollment_service.enroll(session, tournament_id, payload.player_id, payload.partner_id)
        session.commit()
    except TournamentError as exc:
        session.rollback()
        raise_http(exc)
    session.refresh(enrollment)
    return enrollment


@router.get("/tournaments/{tournament_id}/enrollments", response_model=List[EnrollmentResponse])
def list_enrollments(tournament_id: int, session: Session = Depends(get_session)):
    try:
        return enrollment_service.list_enrollments(session, tournament_id)
    except TournamentError as exc:
        raise_http(exc)


@router.delete("/tournaments/{tournament_id}/enrollments/{player_id}", status_code=204)
def withdraw(tournament_id: int, player_id: int, session: Session = Depends(get_session)):
    """Withdraw a player (or the team they belong to) before the tournament starts."""
    try:
        enrollment_service.withdraw(session, tournament_id, player_id)
        session.commit()
    except TournamentError as exc:
        session.rollback()
        raise_http(exc)
    return Response(status_code=204)


# ============================================================================
# Admin seed management
# ============================================================================


@router.put("/enrollments/{enrollment_id}/seed", response_model=EnrollmentResponse)
def set_seed(enrollment_id: int, payload: SeedRequest, session: Session = Depends(get_session)):
    """Pin a seed; pinned seeds survive the automatic seeding at start."""
    try:
        enrollment = enrollment_service.admin_set_seed(session, enrollment_id, payload.seed)
        session.commit()
    except TournamentError as exc:
        session.rollback()
        raise_http(exc)
    session.refresh(enrollment)
    return enrollment


@router.post("/enrollments/swap-seeds", response_model=List[EnrollmentResponse])
def swap_seeds(payload: SwapSeedsRequest, session: Session = Depends(get_session)):
    try:
        swapped = enrollment_service.admin_swap_seeds(
            session, payload.first_enrollment_id, payload.second_enrollment_id
        )
        session.commit()
    except TournamentError as exc:
        session.rollback()
        raise_http(exc)
    for enrollment in swapped:
        session.refresh(enrollment)
    return swapped


@router.delete("/enrollments/{enrollment_id}", status_code=204)
def remove_enrollment(enrollment_id: int, session: Session = Depends(get_session)):
    try:
        enrollment_service.admin_remove_enrollment(session, enrollment_id)
        session.commit()
    except TournamentError as exc:
        session.rollback()
        raise_http(exc)
    return Response(status_code=204)
