"""Builders and a result simulator shared by the flow tests."""
from typing import Callable, List, Optional

from sqlmodel import Session, select

from rally.models.enrollment import Enrollment
from rally.models.match import MATCH_READY, TournamentMatch
from rally.models.player import Player
from rally.models.tournament import TOURNAMENT_ENROLLMENT, MatchType, Tournament, TournamentFormat
from rally.services import stage_progression
from rally.services.best_of import valid_series_scores
from rally.services.match_results import effective_best_of, record_quick_result


def make_players(session: Session, count: int, top_rating: int = 1200, step: int = 10) -> List[Player]:
    """Players with strictly decreasing ratings, so seed order equals creation order."""
    players = [Player(name=f"Player {i + 1}", rating=top_rating - i * step) for i in range(count)]
    for player in players:
        session.add(player)
    session.commit()
    for player in players:
        session.refresh(player)
    return players


def make_tournament(
    session: Session,
    fmt: TournamentFormat,
    entrants: int,
    match_type: MatchType = MatchType.singles,
    **settings,
) -> Tournament:
    """A tournament in enrollment status with `entrants` enrollments."""
    tournament = Tournament(
        name=f"{fmt.value} x{entrants}",
        format=fmt,
        match_type=match_type,
        status=TOURNAMENT_ENROLLMENT,
        **settings,
    )
    session.add(tournament)
    session.commit()
    session.refresh(tournament)

    per_entry = 2 if match_type == MatchType.doubles else 1
    players = make_players(session, entrants * per_entry)
    for i in range(entrants):
        player = players[i * per_entry]
        partner = players[i * per_entry + 1] if per_entry == 2 else None
        session.add(
            Enrollment(tournament_id=tournament.id, player_id=player.id, partner_id=partner.id if partner else None)
        )
    session.commit()
    return tournament


def start(session: Session, tournament_id: int) -> stage_progression.StageResult:
    result = stage_progression.start_tournament(session, tournament_id)
    session.commit()
    return result


def all_matches(session: Session, tournament_id: int) -> List[TournamentMatch]:
    session.expire_all()
    return list(
        session.exec(
            select(TournamentMatch)
            .where(TournamentMatch.tournament_id == tournament_id)
            .order_by(TournamentMatch.round_number, TournamentMatch.position)
        ).all()
    )


def next_ready(session: Session, tournament_id: int) -> Optional[TournamentMatch]:
    return next((m for m in all_matches(session, tournament_id) if m.status == MATCH_READY), None)


def favourite(match: TournamentMatch) -> int:
    return match.participant_a_id


def underdog(match: TournamentMatch) -> int:
    return match.participant_b_id


def play_out(
    session: Session,
    tournament_id: int,
    pick_winner: Callable[[TournamentMatch], int] = favourite,
    max_matches: int = 500,
) -> int:
    """
    Record quick results for every ready match until none is left, generating
    Swiss rounds as they open up. Returns the number of matches recorded.
    """
    played = 0
    while played < max_matches:
        match = next_ready(session, tournament_id)
        if match is None:
            tournament = session.get(Tournament, tournament_id)
            if tournament.format == TournamentFormat.swiss and tournament.status != "completed":
                stage_progression.generate_next_swiss_round(session, tournament_id)
                session.commit()
                continue
            break
        score = valid_series_scores(effective_best_of(session, match))[0]
        record_quick_result(session, match.id, pick_winner(match), score)
        session.commit()
        played += 1
    return played
