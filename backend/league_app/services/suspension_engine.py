"""
Suspension engine.

Suspensions are never stored as counters. A player's state is recomputed
from the card ledger, the completed matches of the player's team and any
manual suspensions each time it is asked for:

    for each completed team match, oldest first:
        if the player was fielded and owes matches -> one match served
        then add what the cards received in that match cost

Red cards and double yellows each cost `red_card_matches`. Yellow cards
accumulate; reaching a configured count adds that threshold's matches.
Only events strictly before `as_of` count.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from league_app.config import Settings, get_settings
from league_app.models.card_record import CardKind, CardRecord
from league_app.models.manual_suspension import ManualSuspension
from league_app.models.match import Match
from league_app.models.player import Player
from league_app.models.roster import Side, parse_roster, selected_players
from league_app.services.actors import Actor
from league_app.services.card_ledger import effective_cards
from league_app.services.record_store import RecordStore, StoreError
from league_app.services.results import EligibilityResult, ErrorKind, OperationResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SuspensionRules:
    red_card_matches: int = 1
    # cumulative yellow count -> matches added on reaching it
    yellow_card_thresholds: Dict[int, int] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, settings: Settings) -> "SuspensionRules":
        return cls(
            red_card_matches=settings.red_card_suspension_matches,
            yellow_card_thresholds=dict(settings.yellow_card_thresholds),
        )


@dataclass
class SuspensionState:
    player_id: int
    team_id: Optional[int] = None
    yellow_cards: int = 0
    # Red cards plus double yellows
    red_cards: int = 0
    double_yellow_cards: int = 0
    manual_matches: int = 0
    matches_owed: int = 0
    matches_served: int = 0
    # Upcoming team matches the player sits out (filled by get_suspensions)
    sits_out_match_ids: List[int] = field(default_factory=list)

    @property
    def matches_remaining(self) -> int:
        return max(0, self.matches_owed - self.matches_served)

    @property
    def eligible(self) -> bool:
        return self.matches_remaining <= 0


@dataclass
class SuspensionReport:
    states: List[SuspensionState] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


@dataclass
class ManualSuspensionResult(OperationResult):
    suspension: Optional[ManualSuspension] = None


def _default_rules() -> SuspensionRules:
    return SuspensionRules.from_settings(get_settings())


def was_fielded(match: Match, player_id: int, team_id: Optional[int]) -> bool:
    """Player appears in the roster of the side played by their team."""
    if team_id is None:
        return False
    for side in (Side.HOME, Side.AWAY):
        if match.team_for_side(side) != team_id:
            continue
        roster = match.home_roster if side is Side.HOME else match.away_roster
        if any(s.player_id == player_id for s in selected_players(parse_roster(roster))):
            return True
    return False


def _matches_for_card(kind: CardKind, yellow_count: int, rules: SuspensionRules) -> int:
    if kind == CardKind.YELLOW:
        return rules.yellow_card_thresholds.get(yellow_count, 0)
    return rules.red_card_matches


def compute_suspension_state(
    player: Player,
    as_of: datetime,
    cards: Iterable[CardRecord],
    team_matches: Iterable[Match],
    manual: Iterable[ManualSuspension] = (),
    rules: Optional[SuspensionRules] = None,
) -> SuspensionState:
    """Replay the player's history up to (not including) `as_of`."""
    rules = rules or _default_rules()
    state = SuspensionState(player_id=player.id, team_id=player.team_id)

    cards_by_match: Dict[int, List[CardRecord]] = {}
    card_dates: Dict[int, datetime] = {}
    for record in effective_cards(c for c in cards if c.player_id == player.id).values():
        if record.match_date >= as_of:
            continue
        cards_by_match.setdefault(record.match_id, []).append(record)
        card_dates[record.match_id] = record.match_date

    # (when, order, match_id, match or None, manual or None)
    events: List[Tuple[datetime, int, int, Optional[Match], Optional[ManualSuspension]]] = []
    seen_matches = set()
    for match in team_matches:
        if not match.submitted or match.scheduled_at >= as_of or match.id in seen_matches:
            continue
        seen_matches.add(match.id)
        events.append((match.scheduled_at, 1, match.id, match, None))
    # Cards from matches outside the current team's history still cost matches
    for match_id, when in card_dates.items():
        if match_id not in seen_matches:
            events.append((when, 1, match_id, None, None))
    for suspension in manual:
        if suspension.player_id != player.id or not suspension.is_active or suspension.effective_from >= as_of:
            continue
        events.append((suspension.effective_from, 0, suspension.id or 0, None, suspension))
    events.sort(key=lambda e: (e[0], e[1], e[2]))

    yellow_count = 0
    for _, _, match_id, match, suspension in events:
        if suspension is not None:
            state.manual_matches += suspension.matches
            state.matches_owed += suspension.matches
            continue

        if match is not None and state.matches_remaining > 0 and was_fielded(match, player.id, player.team_id):
            state.matches_served += 1

        for record in sorted(cards_by_match.get(match_id, []), key=lambda r: r.id or 0):
            if record.card_kind == CardKind.YELLOW:
                yellow_count += 1
                state.yellow_cards += 1
            else:
                state.red_cards += 1
                if record.card_kind == CardKind.DOUBLE_YELLOW:
                    state.double_yellow_cards += 1
            state.matches_owed += _matches_for_card(record.card_kind, yellow_count, rules)

    return state


# ============================================================================
# Store-backed queries
# ============================================================================


def _load_states(
    store: RecordStore, players: Sequence[Player], as_of: datetime, rules: SuspensionRules
) -> Dict[int, SuspensionState]:
    player_ids = [p.id for p in players]
    team_ids = {p.team_id for p in players if p.team_id is not None}
    cards = store.read_cards_for_players(player_ids)
    matches = store.read_completed_matches_for_teams(team_ids)
    manual = store.read_manual_suspensions(player_ids)

    matches_by_team: Dict[int, List[Match]] = {}
    for match in matches:
        for team_id in (match.home_team_id, match.away_team_id):
            if team_id in team_ids:
                matches_by_team.setdefault(team_id, []).append(match)

    return {
        player.id: compute_suspension_state(
            player,
            as_of,
            [c for c in cards if c.player_id == player.id],
            matches_by_team.get(player.team_id, []),
            [m for m in manual if m.player_id == player.id],
            rules,
        )
        for player in players
    }


def get_eligibility(
    store: RecordStore,
    player_ids: Iterable[int],
    match_date: datetime,
    rules: Optional[SuspensionRules] = None,
) -> EligibilityResult:
    """Eligibility of each player for a match on `match_date`.

    Fails open: a player whose state cannot be determined is reported
    eligible and the reason is listed in `errors`.
    """
    rules = rules or _default_rules()
    ids = list(dict.fromkeys(player_ids))
    result = EligibilityResult(eligibility={pid: True for pid in ids})
    if not ids:
        return result

    try:
        players = store.read_players(ids)
        found = {p.id for p in players}
        for pid in ids:
            if pid not in found:
                result.errors.append(f"Player {pid} not found")
        states = _load_states(store, players, match_date, rules)
    except StoreError as exc:
        logger.warning("Eligibility lookup failed, defaulting %d player(s) to eligible: %s", len(ids), exc)
        result.errors.append(str(exc))
        return result

    for pid, state in states.items():
        result.eligibility[pid] = state.eligible
    if result.errors:
        logger.warning("Eligibility degraded: %s", "; ".join(result.errors))
    return result


def remaining_matches(
    store: RecordStore, player_id: int, as_of: datetime, rules: Optional[SuspensionRules] = None
) -> int:
    """Matches the player still has to sit out; 0 when unknown."""
    rules = rules or _default_rules()
    try:
        players = store.read_players([player_id])
        if not players:
            return 0
        return _load_states(store, players, as_of, rules)[player_id].matches_remaining
    except StoreError as exc:
        logger.warning("Could not compute suspension for player %d: %s", player_id, exc)
        return 0


def is_eligible(
    store: RecordStore, player_id: int, match_date: datetime, rules: Optional[SuspensionRules] = None
) -> bool:
    return get_eligibility(store, [player_id], match_date, rules).eligibility[player_id]


def get_suspensions(
    store: RecordStore,
    team_id: Optional[int] = None,
    as_of: Optional[datetime] = None,
    rules: Optional[SuspensionRules] = None,
) -> SuspensionReport:
    """Card/suspension overview for one team, or every team when team_id is None.

    Only players with at least one card or manual suspension are listed.
    """
    rules = rules or _default_rules()
    as_of = as_of or datetime.utcnow()
    report = SuspensionReport()
    try:
        players = store.read_players_for_team(team_id)
        states = _load_states(store, players, as_of, rules)
        suspended_teams = {s.team_id for s in states.values() if s.matches_remaining > 0 and s.team_id is not None}
        upcoming = store.read_upcoming_matches_for_teams(suspended_teams, as_of)
    except StoreError as exc:
        logger.exception("Suspension overview failed")
        report.errors.append(str(exc))
        return report

    for player in players:
        state = states[player.id]
        if not (state.yellow_cards or state.red_cards or state.manual_matches):
            continue
        if state.matches_remaining > 0:
            team_upcoming = [m.id for m in upcoming if player.team_id in (m.home_team_id, m.away_team_id)]
            state.sits_out_match_ids = team_upcoming[: state.matches_remaining]
        report.states.append(state)

    report.states.sort(key=lambda s: (-s.matches_remaining, -s.red_cards, -s.yellow_cards, s.player_id))
    return report


# ============================================================================
# Manual suspensions
# ============================================================================


def apply_manual_suspension(
    store: RecordStore,
    actor: Actor,
    player_id: int,
    reason: str,
    matches: int,
    effective_from: Optional[datetime] = None,
    notes: Optional[str] = None,
) -> ManualSuspensionResult:
    if not actor.is_admin:
        return ManualSuspensionResult.fail(ErrorKind.UNAUTHORIZED, "Only an administrator can suspend a player")
    if matches < 1:
        return ManualSuspensionResult.fail(ErrorKind.VALIDATION, "A suspension must cover at least one match")
    if not reason or not reason.strip():
        return ManualSuspensionResult.fail(ErrorKind.VALIDATION, "A reason is required")

    try:
        if not store.read_players([player_id]):
            return ManualSuspensionResult.fail(ErrorKind.NOT_FOUND, f"Player {player_id} not found")
        suspension = store.write_manual_suspension(
            ManualSuspension(
                player_id=player_id,
                reason=reason.strip(),
                matches=matches,
                effective_from=effective_from or datetime.utcnow(),
                notes=notes,
                created_by=actor.describe(),
            )
        )
    except StoreError as exc:
        logger.exception("Manual suspension for player %d failed", player_id)
        return ManualSuspensionResult.fail(ErrorKind.STORE, str(exc))

    logger.info("Player %d suspended for %d match(es) by %s: %s", player_id, matches, actor.describe(), reason)
    return ManualSuspensionResult(
        success=True,
        message=f"Player suspended for {matches} match(es)",
        suspension=suspension,
    )


def deactivate_manual_suspension(store: RecordStore, actor: Actor, suspension_id: int) -> ManualSuspensionResult:
    if not actor.is_admin:
        return ManualSuspensionResult.fail(ErrorKind.UNAUTHORIZED, "Only an administrator can lift a suspension")
    try:
        suspension = store.read_manual_suspension(suspension_id)
        if suspension is None:
            return ManualSuspensionResult.fail(ErrorKind.NOT_FOUND, f"Suspension {suspension_id} not found")
        if not suspension.is_active:
            return ManualSuspensionResult(success=True, message="Suspension already inactive", suspension=suspension)
        suspension.is_active = False
        suspension = store.write_manual_suspension(suspension)
    except StoreError as exc:
        logger.exception("Deactivating suspension %d failed", suspension_id)
        return ManualSuspensionResult.fail(ErrorKind.STORE, str(exc))

    logger.info("Suspension %d lifted by %s", suspension_id, actor.describe())
    return ManualSuspensionResult(success=True, message="Suspension lifted", suspension=suspension)
