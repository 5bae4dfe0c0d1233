"""
Cup bracket engine.

A cup match's round token ("1/8-3", "QF-2", "SF-1", "FINAL") fully determines
its place in the bracket. From it we derive the single downstream slot
(next match + side) the winner is written into, and the chain of slots that
must be emptied again when a result is withdrawn.

Slot rule: position n feeds position ceil(n / 2) of the next round; even
positions take the home side, odd positions the away side.

Only team slots of downstream matches are ever written here; scores and
rosters are never touched.
"""
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

from league_app.models.match import Match
from league_app.models.roster import Side
from league_app.services.record_store import RecordStore, StoreError
from league_app.services.results import AdvanceReason, AdvanceResult, ClearResult

logger = logging.getLogger(__name__)


class CupRound(str, Enum):
    ROUND_OF_32 = "ROUND_OF_32"
    ROUND_OF_16 = "ROUND_OF_16"
    QUARTER_FINAL = "QUARTER_FINAL"
    SEMI_FINAL = "SEMI_FINAL"
    FINAL = "FINAL"


# round -> (token prefix, number of matches in the round)
ROUND_SPECS: Dict[CupRound, Tuple[str, int]] = {
    CupRound.ROUND_OF_32: ("1/16", 16),
    CupRound.ROUND_OF_16: ("1/8", 8),
    CupRound.QUARTER_FINAL: ("QF", 4),
    CupRound.SEMI_FINAL: ("SF", 2),
    CupRound.FINAL: ("FINAL", 1),
}

ROUND_ORDER: List[CupRound] = [
    CupRound.ROUND_OF_32,
    CupRound.ROUND_OF_16,
    CupRound.QUARTER_FINAL,
    CupRound.SEMI_FINAL,
    CupRound.FINAL,
]

NEXT_ROUND: Dict[CupRound, CupRound] = {
    CupRound.ROUND_OF_32: CupRound.ROUND_OF_16,
    CupRound.ROUND_OF_16: CupRound.QUARTER_FINAL,
    CupRound.QUARTER_FINAL: CupRound.SEMI_FINAL,
    CupRound.SEMI_FINAL: CupRound.FINAL,
}

ROUND_LABELS: Dict[CupRound, str] = {
    CupRound.ROUND_OF_32: "1/16 Finale",
    CupRound.ROUND_OF_16: "1/8 Finale",
    CupRound.QUARTER_FINAL: "Kwartfinale",
    CupRound.SEMI_FINAL: "Halve Finale",
    CupRound.FINAL: "Finale",
}

_PREFIX_TO_ROUND: Dict[str, CupRound] = {
    prefix: round_ for round_, (prefix, _) in ROUND_SPECS.items() if round_ is not CupRound.FINAL
}

_TOKEN_RE = re.compile(r"^(1/16|1/8|QF|SF)\s*-?\s*(\d+)$", re.IGNORECASE)


@dataclass(frozen=True)
class RoundId:
    round: CupRound
    position: int

    @property
    def token(self) -> str:
        return canonical_token(self)

    @property
    def label(self) -> str:
        if self.round is CupRound.FINAL:
            return ROUND_LABELS[self.round]
        return f"{ROUND_LABELS[self.round]} {self.position}"


@dataclass(frozen=True)
class BracketSlot:
    """Where a match sits and which downstream slot its winner fills."""

    round_id: RoundId
    next_token: Optional[str]
    next_side: Optional[Side]


class DecisionKind(str, Enum):
    WINNER = "winner"
    DECISION_REQUIRED = "decision_required"
    INCOMPLETE = "incomplete"


@dataclass(frozen=True)
class Decision:
    kind: DecisionKind
    winner_side: Optional[Side] = None
    winner_team_id: Optional[int] = None


# ============================================================================
# Token parsing / mapping table
# ============================================================================


def parse_round(token: Optional[str]) -> Optional[RoundId]:
    """Parse a round token. Unknown tokens and out-of-range positions give None."""
    if not token or not isinstance(token, str):
        return None
    cleaned = token.strip()
    if cleaned.upper() == "FINAL":
        return RoundId(CupRound.FINAL, 1)
    m = _TOKEN_RE.match(cleaned)
    if not m:
        return None
    round_ = _PREFIX_TO_ROUND[m.group(1).upper()]
    position = int(m.group(2))
    if not 1 <= position <= ROUND_SPECS[round_][1]:
        return None
    return RoundId(round_, position)


def canonical_token(round_id: RoundId) -> str:
    prefix, _ = ROUND_SPECS[round_id.round]
    if round_id.round is CupRound.FINAL:
        return prefix
    return f"{prefix}-{round_id.position}"


def normalize_token(token: Optional[str]) -> Optional[str]:
    """Canonical form of a bracket token, or the token unchanged if it isn't one."""
    round_id = parse_round(token)
    return canonical_token(round_id) if round_id else token


def next_target(token: Optional[str]) -> Optional[Tuple[str, Side]]:
    """(next match token, side) the winner of `token` is written into; None for the final or non-bracket."""
    round_id = parse_round(token)
    if round_id is None or round_id.round is CupRound.FINAL:
        return None
    next_round = NEXT_ROUND[round_id.round]
    next_position = (round_id.position + 1) // 2
    side = Side.HOME if round_id.position % 2 == 0 else Side.AWAY
    return canonical_token(RoundId(next_round, next_position)), side


def bracket_slot(token: Optional[str]) -> Optional[BracketSlot]:
    round_id = parse_round(token)
    if round_id is None:
        return None
    nxt = next_target(token)
    return BracketSlot(
        round_id=round_id,
        next_token=nxt[0] if nxt else None,
        next_side=nxt[1] if nxt else None,
    )


def next_slot(token: Optional[str]) -> Optional[BracketSlot]:
    """Slot of `token` with its downstream target; None for the final and for non-bracket tokens."""
    slot = bracket_slot(token)
    if slot is None or slot.next_token is None:
        return None
    return slot


def feeder_token(token: str, side: Side) -> Optional[str]:
    """Inverse of next_slot: which match feeds `side` of `token`."""
    round_id = parse_round(token)
    if round_id is None:
        return None
    previous = [r for r, n in NEXT_ROUND.items() if n is round_id.round]
    if not previous:
        return None
    position = round_id.position * 2 if side is Side.HOME else round_id.position * 2 - 1
    return canonical_token(RoundId(previous[0], position))


def bracket_table(first_round: CupRound = CupRound.ROUND_OF_32) -> List[BracketSlot]:
    """Every slot from `first_round` to the final, in round order."""
    table: List[BracketSlot] = []
    for round_ in ROUND_ORDER[ROUND_ORDER.index(first_round):]:
        for position in range(1, ROUND_SPECS[round_][1] + 1):
            slot = bracket_slot(canonical_token(RoundId(round_, position)))
            if slot is not None:
                table.append(slot)
    return table


# ============================================================================
# Winner decision
# ============================================================================


def decide_winner(match: Match) -> Decision:
    """Who won, if anyone. Cup matches need a decisive result: level scores need a shootout."""
    if not match.has_both_scores():
        return Decision(DecisionKind.INCOMPLETE)
    if match.home_score == match.away_score:
        return Decision(DecisionKind.DECISION_REQUIRED)
    if match.home_score > match.away_score:
        return Decision(DecisionKind.WINNER, Side.HOME, match.home_team_id)
    return Decision(DecisionKind.WINNER, Side.AWAY, match.away_team_id)


def _set_side(match: Match, side: Side, team_id: Optional[int]) -> None:
    if side is Side.HOME:
        match.home_team_id = team_id
    else:
        match.away_team_id = team_id


# ============================================================================
# Advancement
# ============================================================================


def advance_winner(store: RecordStore, match_id: int) -> AdvanceResult:
    """Write the winner of a cup match into its downstream slot.

    Idempotent: when the slot already holds the winner nothing is written.
    A different occupant is overwritten, and whatever that occupant had
    caused further downstream is cleared first.
    """
    try:
        match = store.read_match(match_id)
    except StoreError as exc:
        logger.exception("Advancement for match %d: read failed", match_id)
        return AdvanceResult(advanced=False, reason=AdvanceReason.STORE_ERROR, message=str(exc))
    if match is None:
        return AdvanceResult(advanced=False, reason=AdvanceReason.NOT_FOUND, message="Match not found")
    if not match.is_cup_match:
        return AdvanceResult(advanced=False, reason=AdvanceReason.NOT_CUP_MATCH, message="Not a cup match")
    return _advance(store, match)


def _advance(store: RecordStore, match: Match) -> AdvanceResult:
    round_id = parse_round(match.round_token)
    if round_id is None:
        return AdvanceResult(
            advanced=False,
            reason=AdvanceReason.NOT_BRACKET,
            message=f"Round token {match.round_token!r} is not part of the bracket",
        )
    slot = next_target(match.round_token)
    if slot is None:
        return AdvanceResult(advanced=False, reason=AdvanceReason.FINAL, message="The final has no next round")

    decision = decide_winner(match)
    if decision.kind is DecisionKind.INCOMPLETE:
        return AdvanceResult(advanced=False, reason=AdvanceReason.INCOMPLETE, message="Match has no complete score")
    if decision.kind is DecisionKind.DECISION_REQUIRED:
        return AdvanceResult(
            advanced=False,
            reason=AdvanceReason.DECISION_REQUIRED,
            message="Scores are level; a shootout must decide the winner",
        )
    if decision.winner_team_id is None:
        return AdvanceResult(
            advanced=False,
            reason=AdvanceReason.MISSING_TEAM,
            message=f"Winning side {decision.winner_side.value} has no team assigned",
        )

    next_token, side = slot
    winner_id = decision.winner_team_id
    try:
        next_match = store.read_match_by_token(next_token)
        if next_match is None:
            return AdvanceResult(
                advanced=False,
                reason=AdvanceReason.NEXT_MATCH_MISSING,
                message=f"Next match {next_token} not found",
                next_token=next_token,
                side=side.value,
            )

        occupant = next_match.team_for_side(side)
        if occupant == winner_id:
            return AdvanceResult(
                advanced=True,
                message=f"Team {winner_id} already in {next_token} ({side.value})",
                next_token=next_token,
                side=side.value,
                team_id=winner_id,
                wrote=False,
            )

        cleared: List[str] = []
        if occupant is not None:
            # Results built on the previous occupant no longer hold
            cascade = clear_advancement_cascade(store, next_token)
            if not cascade.success:
                return AdvanceResult(
                    advanced=False,
                    reason=AdvanceReason.STORE_ERROR,
                    message=cascade.error or cascade.message,
                    next_token=next_token,
                    side=side.value,
                )
            cleared = cascade.cleared_tokens

        _set_side(next_match, side, winner_id)
        store.write_match(next_match)
    except StoreError as exc:
        logger.exception("Advancement %s -> %s failed", match.round_token, next_token)
        return AdvanceResult(
            advanced=False,
            reason=AdvanceReason.STORE_ERROR,
            message=str(exc),
            next_token=next_token,
            side=side.value,
        )

    logger.info(
        "Advanced team %d from %s to %s (%s)%s",
        winner_id,
        match.round_token,
        next_token,
        side.value,
        f", replaced {occupant}" if occupant is not None else "",
    )
    return AdvanceResult(
        advanced=True,
        message=f"Winner advanced to {next_token}",
        next_token=next_token,
        side=side.value,
        team_id=winner_id,
        wrote=True,
        cleared_tokens=cleared,
    )


# ============================================================================
# Clearing
# ============================================================================


def clear_advancement(store: RecordStore, token: str) -> ClearResult:
    """Empty the downstream slot that `token` writes into (that side only)."""
    slot = next_target(token)
    if slot is None:
        return ClearResult(success=True, message="No downstream slot")
    next_token, side = slot
    try:
        next_match = store.read_match_by_token(next_token)
        if next_match is None:
            return ClearResult(success=False, message=f"Next match {next_token} not found", error="next_match_missing")
        if next_match.team_for_side(side) is None:
            return ClearResult(success=True, message="Nothing to clear")
        _set_side(next_match, side, None)
        store.write_match(next_match)
    except StoreError as exc:
        logger.exception("Clearing advancement from %s failed", token)
        return ClearResult(success=False, message="Clearing advancement failed", error=str(exc))
    logger.info("Cleared %s slot of %s (fed by %s)", side.value, next_token, token)
    return ClearResult(success=True, message=f"Cleared {next_token} ({side.value})", cleared_tokens=[next_token])


def clear_advancement_cascade(store: RecordStore, token: str) -> ClearResult:
    """Clear `token`'s placement, then the placement each emptied match had made in turn.

    Stops at the first downstream slot that is already empty, or at the final.
    Scores and the other side of every match are left alone.
    """
    cleared: List[str] = []
    current = normalize_token(token)
    while True:
        slot = next_target(current)
        if slot is None:
            break
        next_token, side = slot
        try:
            next_match = store.read_match_by_token(next_token)
            if next_match is None or next_match.team_for_side(side) is None:
                break
            _set_side(next_match, side, None)
            store.write_match(next_match)
        except StoreError as exc:
            logger.exception("Cascading clear from %s stopped at %s", token, next_token)
            return ClearResult(
                success=False,
                message=f"Cascade stopped at {next_token}",
                cleared_tokens=cleared,
                error=str(exc),
            )
        cleared.append(next_token)
        current = next_token

    if cleared:
        logger.info("Cascading clear from %s emptied %s", token, ", ".join(cleared))
    return ClearResult(
        success=True,
        message=f"Cleared {len(cleared)} downstream slot(s)" if cleared else "Nothing to clear",
        cleared_tokens=cleared,
    )


def propagate_result(store: RecordStore, match: Match, had_scores_before: bool) -> AdvanceResult:
    """Bring the bracket in line with a freshly persisted cup result.

    Decisive result: advance. Scores removed, or turned into a draw, after a
    result had been recorded: withdraw the earlier placement in cascade.
    """
    if not match.is_cup_match:
        return AdvanceResult(advanced=False, reason=AdvanceReason.NOT_CUP_MATCH, message="Not a cup match")
    if parse_round(match.round_token) is None:
        return AdvanceResult(advanced=False, reason=AdvanceReason.NOT_BRACKET, message="Not a bracket match")

    decision = decide_winner(match)
    if decision.kind is DecisionKind.WINNER:
        return _advance(store, match)

    reason = (
        AdvanceReason.DECISION_REQUIRED
        if decision.kind is DecisionKind.DECISION_REQUIRED
        else AdvanceReason.INCOMPLETE
    )
    message = (
        "Scores are level; a shootout must decide the winner"
        if reason is AdvanceReason.DECISION_REQUIRED
        else "Match has no complete score"
    )
    if not had_scores_before:
        return AdvanceResult(advanced=False, reason=reason, message=message)

    cleared = clear_advancement_cascade(store, match.round_token)
    if not cleared.success:
        return AdvanceResult(
            advanced=False,
            reason=AdvanceReason.STORE_ERROR,
            message=cleared.error or cleared.message,
            cleared_tokens=cleared.cleared_tokens,
        )
    if cleared.cleared_tokens:
        message = f"{message}; withdrew earlier advancement"
    return AdvanceResult(advanced=False, reason=reason, message=message, cleared_tokens=cleared.cleared_tokens)
