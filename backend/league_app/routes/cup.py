"""
Cup API Routes
Bracket creation, manual advancement and clearing.
"""

from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from league_app.config import Settings, get_settings
from league_app.routes.deps import get_actor, get_store, raise_for_result
from league_app.routes.matches import AdvancementResponse, MatchResponse, advancement_payload, match_payload
from league_app.services.actors import Actor, ActorRole
from league_app.services.bracket_engine import (
    ROUND_ORDER,
    CupRound,
    advance_winner,
    clear_advancement,
    clear_advancement_cascade,
    parse_round,
)
from league_app.services.cup_builder import build_cup_bracket
from league_app.services.record_store import RecordStore, StoreError
from league_app.services.results import AdvanceReason

router = APIRouter()


class BuildBracketRequest(BaseModel):
    team_ids: List[int]
    round_dates: Dict[CupRound, datetime]
    location: Optional[str] = None


class BuildBracketResponse(BaseModel):
    success: bool
    message: str
    matches: List[MatchResponse]


class ClearResponse(BaseModel):
    success: bool
    message: str
    cleared_tokens: List[str] = []


class BracketRound(BaseModel):
    round: CupRound
    matches: List[MatchResponse]


def _require_staff(actor: Actor) -> None:
    if actor.role not in (ActorRole.ADMIN, ActorRole.REFEREE):
        raise HTTPException(status_code=403, detail="Only administrators and referees can change the bracket")


@router.post("/cup/bracket", response_model=BuildBracketResponse, status_code=201)
def create_bracket(
    request: BuildBracketRequest,
    store: RecordStore = Depends(get_store),
    actor: Actor = Depends(get_actor),
    settings: Settings = Depends(get_settings),
):
    """Create all cup matches from 4, 8, 16 or 32 teams, seeded in the given order."""
    result = build_cup_bracket(store, actor, request.team_ids, request.round_dates, request.location)
    raise_for_result(result)
    return BuildBracketResponse(
        success=True,
        message=result.message,
        matches=[match_payload(m, settings) for m in result.matches],
    )


@router.get("/cup/bracket", response_model=List[BracketRound])
def get_bracket(store: RecordStore = Depends(get_store), settings: Settings = Depends(get_settings)):
    """Cup matches grouped by round, in bracket order."""
    try:
        matches = store.list_cup_matches()
    except StoreError as e:
        raise HTTPException(status_code=503, detail=str(e))

    grouped: Dict[CupRound, list] = {}
    for match in matches:
        round_id = parse_round(match.round_token)
        if round_id is None:
            continue
        grouped.setdefault(round_id.round, []).append((round_id.position, match))

    return [
        BracketRound(
            round=round_,
            matches=[match_payload(m, settings) for _, m in sorted(grouped[round_], key=lambda pm: pm[0])],
        )
        for round_ in ROUND_ORDER
        if round_ in grouped
    ]


@router.post("/cup/matches/{match_id}/advance", response_model=AdvancementResponse)
def advance(
    match_id: int,
    store: RecordStore = Depends(get_store),
    actor: Actor = Depends(get_actor),
):
    """Re-run advancement for one cup match (e.g. after a logged failure)."""
    _require_staff(actor)
    result = advance_winner(store, match_id)
    if result.reason is AdvanceReason.NOT_FOUND:
        raise HTTPException(status_code=404, detail=result.message)
    if result.reason is AdvanceReason.STORE_ERROR:
        raise HTTPException(status_code=503, detail=result.message)
    return advancement_payload(result)


@router.post("/cup/rounds/{token:path}/clear", response_model=ClearResponse)
def clear_round(
    token: str,
    cascade: bool = Query(True),
    store: RecordStore = Depends(get_store),
    actor: Actor = Depends(get_actor),
):
    """Withdraw the placement made by the match with this round token."""
    _require_staff(actor)
    if parse_round(token) is None:
        raise HTTPException(status_code=422, detail=f"'{token}' is not a bracket round")
    result = clear_advancement_cascade(store, token) if cascade else clear_advancement(store, token)
    if not result.success:
        status = 404 if result.error == "next_match_missing" else 503
        raise HTTPException(status_code=status, detail=result.message)
    return ClearResponse(success=True, message=result.message, cleared_tokens=result.cleared_tokens)
