# Force SQLModel table registration at test discovery time
# so every table exists before the test database is created
from rally.models.enrollment import Enrollment  # noqa: F401
from rally.models.game_result import GameResult  # noqa: F401
from rally.models.group import TournamentGroup  # noqa: F401
from rally.models.match import TournamentMatch  # noqa: F401
from rally.models.player import Player  # noqa: F401
from rally.models.round import Round  # noqa: F401
from rally.models.tournament import Tournament  # noqa: F401
