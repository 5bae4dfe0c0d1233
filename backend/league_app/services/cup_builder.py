"""
Cup bracket builder.

Creates every match of a knockout cup in one go: the first round is paired
in the order the teams are given (1v2, 3v4, ...), later rounds are created
with empty team slots and filled by advancement.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from league_app.models.match import Match
from league_app.services.actors import Actor
from league_app.services.bracket_engine import (
    ROUND_ORDER,
    ROUND_SPECS,
    CupRound,
    RoundId,
    canonical_token,
)
from league_app.services.record_store import RecordStore, StoreError
from league_app.services.results import ErrorKind, OperationResult

logger = logging.getLogger(__name__)

FIRST_ROUND_BY_TEAM_COUNT: Dict[int, CupRound] = {
    4: CupRound.SEMI_FINAL,
    8: CupRound.QUARTER_FINAL,
    16: CupRound.ROUND_OF_16,
    32: CupRound.ROUND_OF_32,
}


@dataclass
class BuildResult(OperationResult):
    matches: List[Match] = field(default_factory=list)


def plan_cup_bracket(
    team_ids: Sequence[int],
    round_dates: Dict[CupRound, datetime],
    location: Optional[str] = None,
) -> List[Match]:
    """Unsaved matches for the whole bracket. Raises ValueError on bad input."""
    first_round = FIRST_ROUND_BY_TEAM_COUNT.get(len(team_ids))
    if first_round is None:
        raise ValueError(f"A cup needs 4, 8, 16 or 32 teams, got {len(team_ids)}")
    if len(set(team_ids)) != len(team_ids):
        raise ValueError("A team can only enter the cup once")

    rounds = ROUND_ORDER[ROUND_ORDER.index(first_round):]
    missing = [r.value for r in rounds if r not in round_dates]
    if missing:
        raise ValueError(f"No date given for round(s): {', '.join(missing)}")

    matches: List[Match] = []
    for round_ in rounds:
        _, size = ROUND_SPECS[round_]
        for position in range(1, size + 1):
            round_id = RoundId(round_, position)
            home_id = away_id = None
            if round_ is first_round:
                home_id = team_ids[(position - 1) * 2]
                away_id = team_ids[(position - 1) * 2 + 1]
            matches.append(
                Match(
                    round_token=canonical_token(round_id),
                    matchday_label=round_id.label,
                    is_cup_match=True,
                    scheduled_at=round_dates[round_],
                    location=location,
                    home_team_id=home_id,
                    away_team_id=away_id,
                )
            )
    return matches


def build_cup_bracket(
    store: RecordStore,
    actor: Actor,
    team_ids: Sequence[int],
    round_dates: Dict[CupRound, datetime],
    location: Optional[str] = None,
) -> BuildResult:
    if not actor.is_admin:
        return BuildResult.fail(ErrorKind.UNAUTHORIZED, "Only an administrator can create the cup")
    try:
        planned = plan_cup_bracket(team_ids, round_dates, location)
    except ValueError as exc:
        return BuildResult.fail(ErrorKind.VALIDATION, str(exc))

    try:
        if store.list_cup_matches():
            return BuildResult.fail(ErrorKind.VALIDATION, "Cup matches already exist")
        known = {t.id for t in store.read_teams(team_ids)}
        unknown = [tid for tid in team_ids if tid not in known]
        if unknown:
            return BuildResult.fail(ErrorKind.NOT_FOUND, f"Unknown team(s): {unknown}")
        created = store.create_matches(planned)
    except StoreError as exc:
        logger.exception("Creating cup bracket failed")
        return BuildResult.fail(ErrorKind.STORE, str(exc))

    logger.info("Cup bracket created: %d teams, %d matches", len(team_ids), len(created))
    return BuildResult(success=True, message=f"Created {len(created)} cup matches", matches=created)
