"""
Record store: the only way the rules engine touches persistence.

Each method is a single read or a single committed write. Nothing here spans
several records in one transaction, so callers must treat every write as
independently observable. Database failures surface as StoreError.
"""
import logging
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from league_app.models.card_record import CardRecord
from league_app.models.manual_suspension import ManualSuspension
from league_app.models.match import Match
from league_app.models.player import Player
from league_app.models.side_effect_failure import SideEffectFailure
from league_app.models.team import Team

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """A read or write against the record store failed."""


class RecordStore:
    def __init__(self, session: Session):
        self.session = session

    # ------------------------------------------------------------------
    # Matches
    # ------------------------------------------------------------------

    def read_match(self, match_id: int) -> Optional[Match]:
        try:
            return self.session.get(Match, match_id)
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to read match {match_id}: {exc}") from exc

    def read_match_by_token(self, token: str) -> Optional[Match]:
        """Cup match with the given (canonical) round token."""
        try:
            return self.session.exec(
                select(Match).where(Match.round_token == token, Match.is_cup_match == True)  # noqa: E712
            ).first()
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to read match for round {token}: {exc}") from exc

    def write_match(self, match: Match) -> Match:
        match.updated_at = datetime.utcnow()
        try:
            self.session.add(match)
            self.session.commit()
            self.session.refresh(match)
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreError(f"Failed to write match {match.id}: {exc}") from exc
        return match

    def discard_changes(self, match: Match) -> None:
        """Drop unpersisted attribute changes on a loaded match."""
        try:
            self.session.refresh(match)
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to reload match {match.id}: {exc}") from exc

    def create_matches(self, matches: Sequence[Match]) -> List[Match]:
        try:
            for match in matches:
                self.session.add(match)
            self.session.commit()
            for match in matches:
                self.session.refresh(match)
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreError(f"Failed to create matches: {exc}") from exc
        return list(matches)

    def list_cup_matches(self) -> List[Match]:
        try:
            return list(
                self.session.exec(
                    select(Match).where(Match.is_cup_match == True).order_by(Match.id)  # noqa: E712
                ).all()
            )
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to list cup matches: {exc}") from exc

    def read_completed_matches_for_teams(self, team_ids: Iterable[int]) -> List[Match]:
        """Submitted matches involving any of the teams, oldest first."""
        ids = sorted(set(team_ids))
        if not ids:
            return []
        try:
            return list(
                self.session.exec(
                    select(Match)
                    .where(
                        Match.submitted == True,  # noqa: E712
                        or_(Match.home_team_id.in_(ids), Match.away_team_id.in_(ids)),
                    )
                    .order_by(Match.scheduled_at, Match.id)
                ).all()
            )
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to read completed matches: {exc}") from exc

    def read_upcoming_matches_for_teams(self, team_ids: Iterable[int], after: datetime) -> List[Match]:
        ids = sorted(set(team_ids))
        if not ids:
            return []
        try:
            return list(
                self.session.exec(
                    select(Match)
                    .where(
                        Match.submitted == False,  # noqa: E712
                        Match.scheduled_at >= after,
                        or_(Match.home_team_id.in_(ids), Match.away_team_id.in_(ids)),
                    )
                    .order_by(Match.scheduled_at, Match.id)
                ).all()
            )
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to read upcoming matches: {exc}") from exc

    # ------------------------------------------------------------------
    # Teams / players
    # ------------------------------------------------------------------

    def read_teams(self, team_ids: Iterable[int]) -> List[Team]:
        ids = sorted(set(team_ids))
        if not ids:
            return []
        try:
            return list(self.session.exec(select(Team).where(Team.id.in_(ids))).all())
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to read teams: {exc}") from exc

    def read_players(self, player_ids: Iterable[int]) -> List[Player]:
        ids = sorted(set(player_ids))
        if not ids:
            return []
        try:
            return list(self.session.exec(select(Player).where(Player.id.in_(ids))).all())
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to read players: {exc}") from exc

    def read_players_for_team(self, team_id: Optional[int] = None) -> List[Player]:
        try:
            query = select(Player)
            if team_id is not None:
                query = query.where(Player.team_id == team_id)
            return list(self.session.exec(query.order_by(Player.id)).all())
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to read players: {exc}") from exc

    # ------------------------------------------------------------------
    # Card ledger
    # ------------------------------------------------------------------

    def read_cards_for_players(self, player_ids: Iterable[int]) -> List[CardRecord]:
        ids = sorted(set(player_ids))
        if not ids:
            return []
        try:
            return list(
                self.session.exec(
                    select(CardRecord).where(CardRecord.player_id.in_(ids)).order_by(CardRecord.id)
                ).all()
            )
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to read cards: {exc}") from exc

    def read_cards_for_match(self, match_id: int) -> List[CardRecord]:
        try:
            return list(
                self.session.exec(
                    select(CardRecord).where(CardRecord.match_id == match_id).order_by(CardRecord.id)
                ).all()
            )
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to read cards for match {match_id}: {exc}") from exc

    def read_cards_for_team(self, team_id: Optional[int] = None) -> List[CardRecord]:
        """Ledger rows for one team, or the whole ledger when team_id is None."""
        try:
            query = select(CardRecord)
            if team_id is not None:
                query = query.where(CardRecord.team_id == team_id)
            return list(self.session.exec(query.order_by(CardRecord.id)).all())
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to read cards for team {team_id}: {exc}") from exc

    def append_card_record(self, record: CardRecord) -> CardRecord:
        if record.id is not None:
            raise StoreError("Card records are append-only; refusing to rewrite an existing row")
        try:
            self.session.add(record)
            self.session.commit()
            self.session.refresh(record)
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreError(f"Failed to append card record: {exc}") from exc
        return record

    # ------------------------------------------------------------------
    # Manual suspensions
    # ------------------------------------------------------------------

    def read_manual_suspensions(self, player_ids: Optional[Sequence[int]] = None) -> List[ManualSuspension]:
        """Active manual suspensions, optionally restricted to some players."""
        try:
            query = select(ManualSuspension).where(ManualSuspension.is_active == True)  # noqa: E712
            if player_ids is not None:
                query = query.where(ManualSuspension.player_id.in_(sorted(set(player_ids))))
            return list(self.session.exec(query.order_by(ManualSuspension.id)).all())
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to read manual suspensions: {exc}") from exc

    def read_manual_suspension(self, suspension_id: int) -> Optional[ManualSuspension]:
        try:
            return self.session.get(ManualSuspension, suspension_id)
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to read manual suspension {suspension_id}: {exc}") from exc

    def write_manual_suspension(self, suspension: ManualSuspension) -> ManualSuspension:
        try:
            self.session.add(suspension)
            self.session.commit()
            self.session.refresh(suspension)
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreError(f"Failed to write manual suspension: {exc}") from exc
        return suspension

    # ------------------------------------------------------------------
    # Side-effect failure log
    # ------------------------------------------------------------------

    def record_side_effect_failure(self, match_id: int, side_effect: str, error: str) -> Optional[SideEffectFailure]:
        """Best effort: a failure to log a failure is only logged."""
        failure = SideEffectFailure(match_id=match_id, side_effect=side_effect, error=error[:500])
        try:
            self.session.add(failure)
            self.session.commit()
            self.session.refresh(failure)
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("Could not record %s failure for match %d: %s", side_effect, match_id, exc)
            return None
        return failure

    def resolve_side_effect_failures(self, match_id: int, side_effect: str) -> int:
        try:
            open_failures = self.session.exec(
                select(SideEffectFailure).where(
                    SideEffectFailure.match_id == match_id,
                    SideEffectFailure.side_effect == side_effect,
                    SideEffectFailure.resolved == False,  # noqa: E712
                )
            ).all()
            for failure in open_failures:
                failure.resolved = True
                self.session.add(failure)
            if open_failures:
                self.session.commit()
            return len(open_failures)
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreError(f"Failed to resolve side-effect failures for match {match_id}: {exc}") from exc

    def list_side_effect_failures(self, include_resolved: bool = False) -> List[SideEffectFailure]:
        try:
            query = select(SideEffectFailure)
            if not include_resolved:
                query = query.where(SideEffectFailure.resolved == False)  # noqa: E712
            return list(self.session.exec(query.order_by(SideEffectFailure.id.desc())).all())
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to list side-effect failures: {exc}") from exc
