from league_app.models.card_record import CardKind, CardRecord
from league_app.models.manual_suspension import ManualSuspension
from league_app.models.match import Match
from league_app.models.player import Player
from league_app.models.side_effect_failure import SideEffectFailure
from league_app.models.team import Team

__all__ = [
    "CardKind",
    "CardRecord",
    "ManualSuspension",
    "Match",
    "Player",
    "SideEffectFailure",
    "Team",
]
