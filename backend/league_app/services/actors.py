from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ActorRole(str, Enum):
    ADMIN = "admin"
    REFEREE = "referee"
    TEAM_REP = "team_rep"


@dataclass(frozen=True)
class Actor:
    """Who is acting. Team representatives also carry the team they represent."""

    role: ActorRole
    team_id: Optional[int] = None
    name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role is ActorRole.ADMIN

    def describe(self) -> str:
        if self.role is ActorRole.TEAM_REP:
            return f"team_rep(team={self.team_id})"
        return self.name or self.role.value
