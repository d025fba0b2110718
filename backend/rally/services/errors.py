"""
Domain errors raised by the tournament engine.

Every error carries a stable machine code. Routes translate them to HTTP with
``raise_http`` so the detail reads ``"CODE: message"``.
"""
from typing import NoReturn

from fastapi import HTTPException


class TournamentError(Exception):
    status_code = 400
    default_code = "TOURNAMENT_ERROR"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


class ValidationError(TournamentError):
    """Bad input: scores, best-of values, seeds, configuration."""

    status_code = 422
    default_code = "VALIDATION_ERROR"


class StateError(TournamentError):
    """Operation not allowed in the current tournament or match state."""

    status_code = 400
    default_code = "INVALID_STATE"


class RaceLostError(TournamentError):
    """A concurrent request already performed the state transition."""

    status_code = 409
    default_code = "RACE_LOST"


class NotFoundError(TournamentError):
    status_code = 404
    default_code = "NOT_FOUND"


def raise_http(exc: TournamentError) -> NoReturn:
    raise HTTPException(status_code=exc.status_code, detail=f"{exc.code}: {exc.message}") from exc
