# Force SQLModel table registration at test discovery time
from tourney.models.match import Match  # noqa: F401
