"""
League configuration.

Everything that the rules engine treats as a tunable lives here: the
auto-lock delay relative to kickoff and the suspension thresholds.
Values come from the environment (optionally a .env file).
"""
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, List, Optional

from dotenv import load_dotenv

load_dotenv()

DEFAULT_YELLOW_CARD_THRESHOLDS = "3:1,5:1,7:2"


def parse_thresholds(raw: str) -> Dict[int, int]:
    """Parse "count:matches" pairs, e.g. "3:1,5:1,7:2".

    Each pair means: when the cumulative yellow count reaches `count`,
    `matches` more matches are owed. Negative values are rejected so the
    count -> matches owed mapping can never decrease.
    """
    thresholds: Dict[int, int] = {}
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        pieces = part.split(":")
        if len(pieces) != 2:
            raise ValueError(f"Invalid yellow card threshold '{part}', expected count:matches")
        try:
            count = int(pieces[0])
            matches = int(pieces[1])
        except ValueError:
            raise ValueError(f"Invalid yellow card threshold '{part}', expected integers")
        if count < 1:
            raise ValueError(f"Yellow card threshold count must be >= 1, got {count}")
        if matches < 0:
            raise ValueError(f"Yellow card threshold matches must be >= 0, got {matches}")
        if count in thresholds:
            raise ValueError(f"Duplicate yellow card threshold for count {count}")
        thresholds[count] = matches
    return thresholds


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./league.db"
    sql_echo: bool = False
    # Minutes after kickoff at which a match locks itself (negative = before kickoff)
    auto_lock_delay_minutes: int = 0
    red_card_suspension_matches: int = 1
    yellow_card_thresholds: Dict[int, int] = field(
        default_factory=lambda: parse_thresholds(DEFAULT_YELLOW_CARD_THRESHOLDS)
    )
    cors_origins: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.red_card_suspension_matches < 1:
            raise ValueError("RED_CARD_SUSPENSION_MATCHES must be at least 1")
        for count, matches in self.yellow_card_thresholds.items():
            if count < 1 or matches < 0:
                raise ValueError(f"Invalid yellow card threshold {count}:{matches}")


def load_settings(env: Optional[Dict[str, str]] = None) -> Settings:
    """Build Settings from the environment (or an explicit mapping, for tests)."""
    source = os.environ if env is None else env

    def get(name: str, default: str) -> str:
        return source.get(name, default)

    origins = [o.strip() for o in get("CORS_ORIGINS", "").split(",") if o.strip()]
    return Settings(
        database_url=get("DATABASE_URL", "sqlite:///./league.db"),
        sql_echo=get("SQL_ECHO", "false").lower() in ("true", "1", "yes"),
        auto_lock_delay_minutes=int(get("AUTO_LOCK_DELAY_MINUTES", "0")),
        red_card_suspension_matches=int(get("RED_CARD_SUSPENSION_MATCHES", "1")),
        yellow_card_thresholds=parse_thresholds(get("YELLOW_CARD_THRESHOLDS", DEFAULT_YELLOW_CARD_THRESHOLDS)),
        cors_origins=origins,
    )


@lru_cache
def get_settings() -> Settings:
    """Cached settings accessor; also used as a FastAPI dependency."""
    return load_settings()
