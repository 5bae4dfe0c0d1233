from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import JSON
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from league_app.models.team import Team


class Match(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)

    # Cup matches carry a round token ("1/8-3", "QF-2", "SF-1", "FINAL"); league matches may leave it empty
    round_token: Optional[str] = Field(default=None, index=True)
    matchday_label: Optional[str] = Field(default=None)  # Display label, e.g. "Speeldag 4" / "Kwartfinale 2"
    is_cup_match: bool = Field(default=False, index=True)

    scheduled_at: datetime
    location: Optional[str] = Field(default=None)

    # Team slots (nullable - later cup rounds are filled by advancement)
    home_team_id: Optional[int] = Field(default=None, foreign_key="team.id")
    away_team_id: Optional[int] = Field(default=None, foreign_key="team.id")

    home_score: Optional[int] = Field(default=None)
    away_score: Optional[int] = Field(default=None)

    manually_locked: bool = Field(default=False)
    # Set by an administrator unlock: the kickoff clock no longer locks this match
    lock_overridden: bool = Field(default=False)
    submitted: bool = Field(default=False)

    referee: Optional[str] = Field(default=None)
    notes: Optional[str] = Field(default=None)

    # Lists of PlayerSelection dicts (see league_app.models.roster)
    home_roster: Optional[List[Dict[str, Any]]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    away_roster: Optional[List[Dict[str, Any]]] = Field(default=None, sa_column=Column(JSON, nullable=True))

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = Field(default=None)

    # Team relationships (nullable)
    home_team: Optional["Team"] = Relationship(sa_relationship_kwargs={"foreign_keys": "Match.home_team_id"})
    away_team: Optional["Team"] = Relationship(sa_relationship_kwargs={"foreign_keys": "Match.away_team_id"})

    def team_for_side(self, side: str) -> Optional[int]:
        return self.home_team_id if side == "home" else self.away_team_id

    def has_both_scores(self) -> bool:
        return self.home_score is not None and self.away_score is not None
