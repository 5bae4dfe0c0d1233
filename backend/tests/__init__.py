# Force SQLModel table registration at test discovery time
from league_app.models.card_record import CardRecord  # noqa: F401
from league_app.models.manual_suspension import ManualSuspension  # noqa: F401
from league_app.models.match import Match  # noqa: F401
from league_app.models.player import Player  # noqa: F401
from league_app.models.side_effect_failure import SideEffectFailure  # noqa: F401
from league_app.models.team import Team  # noqa: F401
