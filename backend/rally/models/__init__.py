from rally.models.enrollment import Enrollment
from rally.models.game_result import GameResult
from rally.models.group import TournamentGroup
from rally.models.match import TournamentMatch
from rally.models.player import Player
from rally.models.round import Round
from rally.models.tournament import MatchType, Tournament, TournamentFormat

__all__ = [
    "Player",
    "Tournament",
    "TournamentFormat",
    "MatchType",
    "Enrollment",
    "TournamentGroup",
    "Round",
    "TournamentMatch",
    "GameResult",
]
