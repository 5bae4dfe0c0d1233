from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

SIDE_EFFECT_CUP_ADVANCEMENT = "cup_advancement"
SIDE_EFFECT_CARD_LEDGER = "card_ledger"


class SideEffectFailure(SQLModel, table=True):
    """A post-persist step of a match submission that failed and can be retried."""

    id: Optional[int] = Field(default=None, primary_key=True)
    match_id: int = Field(foreign_key="match.id", index=True)
    side_effect: str  # "cup_advancement" | "card_ledger"
    error: str
    resolved: bool = Field(default=False)
    created_at: datetime = Field(default_factory=datetime.utcnow)
