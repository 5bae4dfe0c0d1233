"""
Match lifecycle controller.

Decides whether a match may be changed, by whom and which fields, then runs
the submission pipeline:

    permission check -> data validation -> persist match
        -> cup bracket propagation (cup matches)
        -> card ledger sync (when rosters are present)

Each step commits on its own. Once the match row is written, a failure in a
later step does not fail the submission: it is returned as a warning and
recorded as a SideEffectFailure so it can be retried by resubmitting.
"""
import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from league_app.config import Settings, get_settings
from league_app.models.match import Match
from league_app.models.roster import PlayerSelection, Side, dump_roster, parse_roster
from league_app.models.side_effect_failure import SIDE_EFFECT_CARD_LEDGER, SIDE_EFFECT_CUP_ADVANCEMENT
from league_app.services.actors import Actor, ActorRole
from league_app.services.bracket_engine import propagate_result
from league_app.services.card_ledger import sync_match_cards
from league_app.services.match_validation import validate_match
from league_app.services.record_store import RecordStore, StoreError
from league_app.services.results import AdvanceReason, ErrorKind, OperationResult, SubmitResult

logger = logging.getLogger(__name__)

__all__ = [
    "Actor",
    "ActorRole",
    "FieldGroup",
    "MatchState",
    "can_edit",
    "derive_state",
    "lock_match",
    "record_shootout",
    "submit_match",
    "unlock_match",
]


class MatchState(str, Enum):
    EDITABLE = "editable"
    AUTO_LOCKED = "auto_locked"
    MANUALLY_LOCKED = "manually_locked"
    SUBMITTED = "submitted"


class FieldGroup(str, Enum):
    RESULT = "result"
    ROSTER = "roster"


RESULT_FIELDS = ("home_score", "away_score", "notes", "referee", "submitted", "scheduled_at", "location")
ROSTER_FIELDS: Dict[str, Side] = {"home_roster": Side.HOME, "away_roster": Side.AWAY}
REQUIRED_FIELDS = ("submitted", "scheduled_at")


def naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Matches store naive UTC timestamps."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def derive_state(match: Match, now: Optional[datetime] = None, settings: Optional[Settings] = None) -> MatchState:
    settings = settings or get_settings()
    now = naive_utc(now) or datetime.utcnow()
    if match.submitted:
        return MatchState.SUBMITTED
    if match.manually_locked:
        return MatchState.MANUALLY_LOCKED
    lock_at = match.scheduled_at + timedelta(minutes=settings.auto_lock_delay_minutes)
    if not match.lock_overridden and now >= lock_at:
        return MatchState.AUTO_LOCKED
    return MatchState.EDITABLE


def can_edit(
    match: Match,
    actor: Actor,
    group: FieldGroup,
    side: Optional[Side] = None,
    now: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> bool:
    if actor.role is ActorRole.ADMIN:
        return True
    if derive_state(match, now, settings) is not MatchState.EDITABLE:
        return False
    if actor.role is ActorRole.REFEREE:
        return True
    # Team representative: own side's roster only
    if group is not FieldGroup.ROSTER or side is None or actor.team_id is None:
        return False
    return match.team_for_side(side) == actor.team_id


def _normalize_roster(value: Any) -> Optional[List[dict]]:
    if value is None:
        return None
    return dump_roster(parse_roster(value))


def _stored_roster(value: Any) -> Optional[List[dict]]:
    try:
        return _normalize_roster(value)
    except ValidationError:
        return value


def _changed_fields(match: Match, fields: Dict[str, Any]) -> Tuple[Dict[str, Any], List[str]]:
    """Normalized values of the fields that actually differ from the match."""
    changes: Dict[str, Any] = {}
    errors: List[str] = []
    for name, value in fields.items():
        if name in ROSTER_FIELDS:
            try:
                value = _normalize_roster(value)
            except ValidationError as exc:
                errors.append(f"{name}: invalid roster ({exc.error_count()} problem(s))")
                continue
            if value != _stored_roster(getattr(match, name)):
                changes[name] = value
        elif name in RESULT_FIELDS:
            if value is None and name in REQUIRED_FIELDS:
                errors.append(f"Field '{name}' cannot be cleared")
                continue
            if name == "scheduled_at":
                value = naive_utc(value)
            if value != getattr(match, name):
                changes[name] = value
        else:
            errors.append(f"Field '{name}' cannot be edited")
    return changes, errors


def _denied(match: Match, actor: Actor, name: str, state: MatchState) -> str:
    if actor.role is ActorRole.TEAM_REP and name in ROSTER_FIELDS and state is MatchState.EDITABLE:
        return f"Team representatives may only edit their own team's roster ({name})"
    if actor.role is ActorRole.TEAM_REP and name not in ROSTER_FIELDS:
        return f"Team representatives may not edit '{name}'"
    return f"Match {match.id} is {state.value}; {actor.role.value} may not edit '{name}'"


def submit_match(
    store: RecordStore,
    match_id: int,
    fields: Dict[str, Any],
    actor: Actor,
    now: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> SubmitResult:
    """Apply a partial update to a match and run its side effects.

    Only fields present in `fields` are touched, and only those whose value
    changes are permission-checked.
    """
    settings = settings or get_settings()
    try:
        match = store.read_match(match_id)
    except StoreError as exc:
        logger.exception("Submit for match %d: read failed", match_id)
        return SubmitResult.fail(ErrorKind.STORE, str(exc))
    if match is None:
        return SubmitResult.fail(ErrorKind.NOT_FOUND, f"Match {match_id} not found")

    changes, field_errors = _changed_fields(match, fields)
    if field_errors:
        return SubmitResult.fail(ErrorKind.VALIDATION, "; ".join(field_errors))

    state = derive_state(match, now, settings)
    for name in changes:
        group = FieldGroup.ROSTER if name in ROSTER_FIELDS else FieldGroup.RESULT
        if not can_edit(match, actor, group, ROSTER_FIELDS.get(name), now, settings):
            logger.info("Rejected edit of %s on match %d by %s (%s)", name, match_id, actor.describe(), state.value)
            return SubmitResult.fail(ErrorKind.UNAUTHORIZED, _denied(match, actor, name, state))

    had_scores_before = match.has_both_scores()
    for name, value in changes.items():
        setattr(match, name, value)

    problems = validate_match(match)
    if problems:
        try:
            store.discard_changes(match)
        except StoreError:
            logger.exception("Could not discard rejected changes on match %d", match_id)
        return SubmitResult.fail(ErrorKind.VALIDATION, "; ".join(problems))

    if changes:
        try:
            match = store.write_match(match)
        except StoreError as exc:
            logger.exception("Submit for match %d: write failed", match_id)
            return SubmitResult.fail(ErrorKind.STORE, str(exc))
        logger.info(
            "Match %d updated by %s: %s", match_id, actor.describe(), ", ".join(sorted(changes))
        )

    result = SubmitResult(success=True, message="Match saved" if changes else "No changes")

    if match.is_cup_match and (match.has_both_scores() or had_scores_before):
        _run_advancement(store, match, had_scores_before, result)

    if match.home_roster is not None or match.away_roster is not None:
        _run_card_sync(store, match, result)

    return result


def _run_advancement(store: RecordStore, match: Match, had_scores_before: bool, result: SubmitResult) -> None:
    advancement = propagate_result(store, match, had_scores_before)
    result.advancement = advancement
    if advancement.is_failure:
        warning = f"Cup advancement failed: {advancement.message}"
        logger.warning("Match %d: %s", match.id, warning)
        result.warnings.append(warning)
        store.record_side_effect_failure(match.id, SIDE_EFFECT_CUP_ADVANCEMENT, advancement.message)
        return
    if advancement.reason is AdvanceReason.DECISION_REQUIRED:
        result.warnings.append(advancement.message)
    _resolve(store, match.id, SIDE_EFFECT_CUP_ADVANCEMENT)


def _run_card_sync(store: RecordStore, match: Match, result: SubmitResult) -> None:
    sync = sync_match_cards(store, match)
    result.cards_appended = sync.appended
    result.cards_retracted = sync.retracted
    if not sync.success:
        warning = f"Card ledger update failed: {sync.error}"
        logger.warning("Match %d: %s", match.id, warning)
        result.warnings.append(warning)
        store.record_side_effect_failure(match.id, SIDE_EFFECT_CARD_LEDGER, sync.error or "unknown error")
        return
    _resolve(store, match.id, SIDE_EFFECT_CARD_LEDGER)


def _resolve(store: RecordStore, match_id: int, side_effect: str) -> None:
    try:
        resolved = store.resolve_side_effect_failures(match_id, side_effect)
    except StoreError as exc:
        logger.warning("Could not mark %s failures of match %d resolved: %s", side_effect, match_id, exc)
        return
    if resolved:
        logger.info("Resolved %d %s failure(s) for match %d", resolved, side_effect, match_id)


def record_shootout(
    store: RecordStore,
    match_id: int,
    winner_side: Any,
    home_penalties: int,
    away_penalties: int,
    actor: Actor,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> SubmitResult:
    """Decide a level cup match on penalties.

    The winner gets one extra goal, the shootout is summarized in the notes
    and the match is submitted through the normal path.
    """
    try:
        side = Side(winner_side)
    except ValueError:
        return SubmitResult.fail(ErrorKind.VALIDATION, f"Unknown side {winner_side!r}")
    if home_penalties < 0 or away_penalties < 0:
        return SubmitResult.fail(ErrorKind.VALIDATION, "Penalty counts cannot be negative")
    if home_penalties == away_penalties:
        return SubmitResult.fail(ErrorKind.VALIDATION, "A shootout cannot end level")
    if (home_penalties > away_penalties) != (side is Side.HOME):
        return SubmitResult.fail(ErrorKind.VALIDATION, "Winner does not match the penalty score")

    try:
        match = store.read_match(match_id)
    except StoreError as exc:
        logger.exception("Shootout for match %d: read failed", match_id)
        return SubmitResult.fail(ErrorKind.STORE, str(exc))
    if match is None:
        return SubmitResult.fail(ErrorKind.NOT_FOUND, f"Match {match_id} not found")
    if not match.is_cup_match:
        return SubmitResult.fail(ErrorKind.VALIDATION, "Shootouts only apply to cup matches")
    if not match.has_both_scores() or match.home_score != match.away_score:
        return SubmitResult.fail(ErrorKind.VALIDATION, "A shootout needs level scores")

    summary = f"Penalty shootout {home_penalties}-{away_penalties}, {side.value} team wins"
    if notes:
        summary = f"{summary}. {notes}"
    fields: Dict[str, Any] = {
        "home_score": match.home_score + (1 if side is Side.HOME else 0),
        "away_score": match.away_score + (1 if side is Side.AWAY else 0),
        "notes": f"{match.notes}\n{summary}" if match.notes else summary,
        "submitted": True,
    }
    result = submit_match(store, match_id, fields, actor, now, settings)
    if result.success:
        result.message = f"Shootout recorded: {summary}"
    return result


def lock_match(store: RecordStore, match_id: int, actor: Actor) -> OperationResult:
    if actor.role not in (ActorRole.ADMIN, ActorRole.REFEREE):
        return OperationResult.fail(ErrorKind.UNAUTHORIZED, "Only administrators and referees can lock a match")
    try:
        match = store.read_match(match_id)
        if match is None:
            return OperationResult.fail(ErrorKind.NOT_FOUND, f"Match {match_id} not found")
        if actor.role is ActorRole.REFEREE and match.submitted:
            return OperationResult.fail(ErrorKind.UNAUTHORIZED, "Referees cannot lock a submitted match")
        if match.manually_locked:
            return OperationResult.ok("Match already locked")
        match.manually_locked = True
        store.write_match(match)
    except StoreError as exc:
        logger.exception("Locking match %d failed", match_id)
        return OperationResult.fail(ErrorKind.STORE, str(exc))
    logger.info("Match %d locked by %s", match_id, actor.describe())
    return OperationResult.ok("Match locked")


def unlock_match(store: RecordStore, match_id: int, actor: Actor) -> OperationResult:
    """Administrator unlock: back to editable, kickoff auto-lock no longer applies."""
    if not actor.is_admin:
        return OperationResult.fail(ErrorKind.UNAUTHORIZED, "Only administrators can unlock a match")
    try:
        match = store.read_match(match_id)
        if match is None:
            return OperationResult.fail(ErrorKind.NOT_FOUND, f"Match {match_id} not found")
        if not match.manually_locked and not match.submitted and match.lock_overridden:
            return OperationResult.ok("Match already unlocked")
        match.manually_locked = False
        match.submitted = False
        match.lock_overridden = True
        store.write_match(match)
    except StoreError as exc:
        logger.exception("Unlocking match %d failed", match_id)
        return OperationResult.fail(ErrorKind.STORE, str(exc))
    logger.info("Match %d unlocked by %s", match_id, actor.describe())
    return OperationResult.ok("Match unlocked")
