"""
Casual (non-tournament) games: one game to 11, head-to-head rating update.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from sqlmodel import Session

from rally.models.game_result import GameResult
from rally.models.player import Player
from rally.services import rating as elo
from rally.services.errors import NotFoundError, ValidationError
from rally.services.notifications import queue_achievement_check

logger = logging.getLogger(__name__)

GAME_POINT = 11
WIN_BY = 2


@dataclass
class CasualResult:
    game_result_id: int
    change: int
    ratings: Dict[int, int]  # player_id -> new rating


def validate_game_score(winner_score: int, loser_score: int) -> None:
    """11 with the loser below 11, or past 11 by exactly two (deuce)."""
    if winner_score < 0 or loser_score < 0:
        raise ValidationError("Scores cannot be negative", code="INVALID_SCORE")
    if loser_score >= winner_score:
        raise ValidationError("Winner score must be higher than loser score", code="INVALID_SCORE")
    if winner_score == GAME_POINT:
        return
    if winner_score > GAME_POINT and winner_score - loser_score == WIN_BY:
        return
    raise ValidationError(
        f"Winner must reach {GAME_POINT} points or win by {WIN_BY} in deuce", code="INVALID_SCORE"
    )


def _load_players(session: Session, player_ids: Sequence[int]) -> List[Player]:
    if len(set(player_ids)) != len(player_ids):
        raise ValidationError("All players must be different", code="DUPLICATE_PLAYER")
    players: List[Player] = []
    for player_id in player_ids:
        player = session.get(Player, player_id)
        if not player:
            raise NotFoundError(f"Player {player_id} not found", code="PLAYER_NOT_FOUND")
        players.append(player)
    return players


def _apply(player: Player, new_rating: int, won: bool) -> None:
    player.rating = new_rating
    player.matches_played += 1
    if won:
        player.matches_won += 1
    player.current_streak = elo.next_streak(player.current_streak, won)
    player.best_streak = max(player.best_streak, player.current_streak)
    player.xp += elo.xp_for_result(won, player.current_streak)
    player.level = elo.level_for_xp(player.xp)
    player.updated_at = datetime.utcnow()


def log_singles_game(
    session: Session, winner_id: int, loser_id: int, winner_score: int, loser_score: int
) -> CasualResult:
    validate_game_score(winner_score, loser_score)
    winner, loser = _load_players(session, [winner_id, loser_id])
    result = elo.calculate_elo(winner.rating, loser.rating)

    game = GameResult(
        winner_id=winner.id,
        loser_id=loser.id,
        winner_score=winner_score,
        loser_score=loser_score,
        rating_change=result.change,
    )
    session.add(game)
    _apply(winner, result.new_winner_rating, True)
    _apply(loser, result.new_loser_rating, False)
    session.add(winner)
    session.add(loser)
    session.flush()

    queue_achievement_check(session, winner.id, loser.id)
    logger.info(f"Casual singles {winner.id} d. {loser.id} {winner_score}-{loser_score} (±{result.change})")
    return CasualResult(game.id, result.change, {winner.id: winner.rating, loser.id: loser.rating})


def log_doubles_game(
    session: Session,
    winner_team: Sequence[int],
    loser_team: Sequence[int],
    winner_score: int,
    loser_score: int,
) -> CasualResult:
    if len(winner_team) != 2 or len(loser_team) != 2:
        raise ValidationError("Doubles teams need exactly two players each", code="INVALID_TEAM")
    validate_game_score(winner_score, loser_score)
    w1, w2, l1, l2 = _load_players(session, [*winner_team, *loser_team])
    result = elo.calculate_doubles_elo([w1.rating, w2.rating], [l1.rating, l2.rating])

    game = GameResult(
        winner_id=w1.id,
        winner_partner_id=w2.id,
        loser_id=l1.id,
        loser_partner_id=l2.id,
        winner_score=winner_score,
        loser_score=loser_score,
        rating_change=result.change,
    )
    session.add(game)
    for player, new_rating in zip((w1, w2), result.winner_ratings):
        _apply(player, new_rating, True)
        session.add(player)
    for player, new_rating in zip((l1, l2), result.loser_ratings):
        _apply(player, new_rating, False)
        session.add(player)
    session.flush()

    queue_achievement_check(session, w1.id, w2.id, l1.id, l2.id)
    logger.info(f"Casual doubles {w1.id}/{w2.id} d. {l1.id}/{l2.id} {winner_score}-{loser_score} (±{result.change})")
    return CasualResult(game.id, result.change, {p.id: p.rating for p in (w1, w2, l1, l2)})


def player_record(player: Player) -> Dict[str, Optional[object]]:
    """Derived profile numbers shown next to a player."""
    played = player.matches_played
    return {
        "tier": elo.rating_tier(player.rating),
        "win_rate": round(player.matches_won / played, 3) if played else None,
        "tournament_win_rate": (
            round(player.tournament_matches_won / player.tournament_matches_played, 3)
            if player.tournament_matches_played
            else None
        ),
    }
