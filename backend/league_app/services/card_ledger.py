"""
Card ledger sync.

Roster slots carry a card annotation per player. On every submission the
annotations of both sides are normalized into one player-keyed map and
compared with the ledger's effective cards for that match; only the
difference is appended. Submitting the same rosters twice appends nothing.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from league_app.models.card_record import CardKind, CardRecord
from league_app.models.match import Match
from league_app.models.roster import CardAnnotation, Side, parse_roster, selected_players
from league_app.services.record_store import RecordStore, StoreError

logger = logging.getLogger(__name__)

# player_id -> (team_id, card kind)
DesiredCards = Dict[int, Tuple[Optional[int], CardKind]]


@dataclass
class LedgerSyncResult:
    success: bool = True
    appended: int = 0
    retracted: int = 0
    error: Optional[str] = None


@dataclass
class CardTotals:
    yellow: int = 0
    double_yellow: int = 0
    red: int = 0
    matches: List[int] = field(default_factory=list)


def annotations_from_rosters(match: Match) -> DesiredCards:
    desired: DesiredCards = {}
    for side in (Side.HOME, Side.AWAY):
        roster = match.home_roster if side is Side.HOME else match.away_roster
        team_id = match.team_for_side(side)
        for selection in selected_players(parse_roster(roster)):
            if selection.card is CardAnnotation.NONE:
                continue
            desired[selection.player_id] = (team_id, CardKind(selection.card.value))
    return desired


def effective_cards(records: Iterable[CardRecord]) -> Dict[Tuple[int, int], CardRecord]:
    """Newest row per (player, match); pairs whose newest row is a retraction are dropped."""
    newest: Dict[Tuple[int, int], CardRecord] = {}
    for record in sorted(records, key=lambda r: r.id or 0):
        newest[(record.player_id, record.match_id)] = record
    return {key: record for key, record in newest.items() if not record.retracted}


def card_totals(records: Iterable[CardRecord]) -> Dict[int, CardTotals]:
    totals: Dict[int, CardTotals] = {}
    for (player_id, match_id), record in effective_cards(records).items():
        entry = totals.setdefault(player_id, CardTotals())
        if record.card_kind == CardKind.YELLOW:
            entry.yellow += 1
        elif record.card_kind == CardKind.DOUBLE_YELLOW:
            entry.double_yellow += 1
        else:
            entry.red += 1
        entry.matches.append(match_id)
    return totals


def sync_match_cards(store: RecordStore, match: Match) -> LedgerSyncResult:
    """Append ledger rows so the effective cards of `match` equal its roster annotations."""
    desired = annotations_from_rosters(match)
    result = LedgerSyncResult()
    try:
        current = {
            player_id: record
            for (player_id, _), record in effective_cards(store.read_cards_for_match(match.id)).items()
        }

        for player_id, (team_id, kind) in sorted(desired.items()):
            existing = current.get(player_id)
            if existing is not None and existing.card_kind == kind and existing.team_id == team_id:
                continue
            store.append_card_record(
                CardRecord(
                    player_id=player_id,
                    match_id=match.id,
                    team_id=team_id,
                    card_kind=kind,
                    match_date=match.scheduled_at,
                )
            )
            result.appended += 1

        for player_id, existing in sorted(current.items()):
            if player_id in desired:
                continue
            store.append_card_record(
                CardRecord(
                    player_id=player_id,
                    match_id=match.id,
                    team_id=existing.team_id,
                    card_kind=existing.card_kind,
                    match_date=match.scheduled_at,
                    retracted=True,
                )
            )
            result.retracted += 1
    except StoreError as exc:
        logger.exception("Card ledger sync for match %d failed", match.id)
        result.success = False
        result.error = str(exc)
        return result

    if result.appended or result.retracted:
        logger.info(
            "Card ledger for match %d: %d appended, %d retracted", match.id, result.appended, result.retracted
        )
    return result
