"""
Roster slot value objects.

A match stores each side's roster as a JSON list of PlayerSelection dicts
(up to MAX_ROSTER_SIZE slots). Empty slots have player_id None.
"""
from enum import Enum
from typing import Any, Iterable, List, Optional

from pydantic import BaseModel

MAX_ROSTER_SIZE = 8


class CardAnnotation(str, Enum):
    NONE = "none"
    YELLOW = "yellow"
    DOUBLE_YELLOW = "double_yellow"
    RED = "red"


class Side(str, Enum):
    HOME = "home"
    AWAY = "away"

    @property
    def opposite(self) -> "Side":
        return Side.AWAY if self is Side.HOME else Side.HOME


class PlayerSelection(BaseModel):
    player_id: Optional[int] = None
    jersey_number: Optional[int] = None
    is_captain: bool = False
    card: CardAnnotation = CardAnnotation.NONE


def parse_roster(raw: Optional[Iterable[Any]]) -> List[PlayerSelection]:
    """Load a stored JSON roster into PlayerSelection objects."""
    if not raw:
        return []
    return [item if isinstance(item, PlayerSelection) else PlayerSelection.model_validate(item) for item in raw]


def dump_roster(selections: Iterable[PlayerSelection]) -> List[dict]:
    return [s.model_dump(mode="json") for s in selections]


def selected_players(selections: Iterable[PlayerSelection]) -> List[PlayerSelection]:
    return [s for s in selections if s.player_id is not None]
