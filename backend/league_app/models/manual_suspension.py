from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel


class ManualSuspension(SQLModel, table=True):
    """Administrator-imposed suspension, independent of cards."""

    id: Optional[int] = Field(default=None, primary_key=True)
    player_id: int = Field(foreign_key="player.id", index=True)
    reason: str
    matches: int = Field(ge=1)
    effective_from: datetime
    notes: Optional[str] = None
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    created_by: Optional[str] = None
