from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel


class CardKind(str, Enum):
    YELLOW = "yellow"
    DOUBLE_YELLOW = "double_yellow"
    RED = "red"


class CardRecord(SQLModel, table=True):
    """One row of the append-only card ledger.

    Rows are never updated or deleted. The effective card for a
    (player, match) pair is the newest row for that pair; a row with
    retracted=True cancels whatever was effective before it.
    """

    id: Optional[int] = Field(default=None, primary_key=True)
    player_id: int = Field(foreign_key="player.id", index=True)
    match_id: int = Field(foreign_key="match.id", index=True)
    team_id: Optional[int] = Field(default=None, foreign_key="team.id", index=True)
    card_kind: CardKind
    match_date: datetime
    retracted: bool = Field(default=False)
    created_at: datetime = Field(default_factory=datetime.utcnow)
