"""
Match API Routes
Result submission, penalty shootouts and locking. No schedule mutation.
"""

from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict

from league_app.config import Settings, get_settings
from league_app.models.match import Match
from league_app.models.roster import PlayerSelection, Side
from league_app.routes.deps import get_actor, get_store, raise_for_result
from league_app.services.actors import Actor
from league_app.services.bracket_engine import normalize_token
from league_app.services.match_lifecycle import (
    MatchState,
    derive_state,
    lock_match,
    naive_utc,
    record_shootout,
    submit_match,
    unlock_match,
)
from league_app.services.record_store import RecordStore, StoreError
from league_app.services.results import AdvanceReason, AdvanceResult, SubmitResult

router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================


class MatchCreateRequest(BaseModel):
    scheduled_at: datetime
    home_team_id: Optional[int] = None
    away_team_id: Optional[int] = None
    location: Optional[str] = None
    matchday_label: Optional[str] = None
    round_token: Optional[str] = None
    is_cup_match: bool = False
    referee: Optional[str] = None


class MatchUpdateRequest(BaseModel):
    """Partial update: only the fields sent are applied."""

    home_score: Optional[int] = None
    away_score: Optional[int] = None
    notes: Optional[str] = None
    referee: Optional[str] = None
    submitted: Optional[bool] = None
    scheduled_at: Optional[datetime] = None
    location: Optional[str] = None
    home_roster: Optional[List[PlayerSelection]] = None
    away_roster: Optional[List[PlayerSelection]] = None


class ShootoutRequest(BaseModel):
    winner_side: Side
    home_penalties: int
    away_penalties: int
    notes: Optional[str] = None


class MatchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    round_token: Optional[str] = None
    matchday_label: Optional[str] = None
    is_cup_match: bool
    scheduled_at: datetime
    location: Optional[str] = None
    home_team_id: Optional[int] = None
    away_team_id: Optional[int] = None
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    manually_locked: bool
    lock_overridden: bool
    submitted: bool
    referee: Optional[str] = None
    notes: Optional[str] = None
    home_roster: Optional[List[Dict[str, Any]]] = None
    away_roster: Optional[List[Dict[str, Any]]] = None
    updated_at: Optional[datetime] = None
    state: Optional[MatchState] = None


class AdvancementResponse(BaseModel):
    advanced: bool
    message: str = ""
    reason: Optional[AdvanceReason] = None
    next_token: Optional[str] = None
    side: Optional[str] = None
    team_id: Optional[int] = None
    wrote: bool = False
    cleared_tokens: List[str] = []


class SubmitResponse(BaseModel):
    success: bool
    message: str
    warnings: List[str] = []
    advancement: Optional[AdvancementResponse] = None
    cards_appended: int = 0
    cards_retracted: int = 0
    match: MatchResponse


class LockResponse(BaseModel):
    success: bool
    message: str
    state: MatchState


class SideEffectFailureResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    match_id: int
    side_effect: str
    error: str
    resolved: bool
    created_at: datetime


# ============================================================================
# Helpers
# ============================================================================


def advancement_payload(advancement: Optional[AdvanceResult]) -> Optional[AdvancementResponse]:
    if advancement is None:
        return None
    return AdvancementResponse(**asdict(advancement))


def match_payload(match: Match, settings: Settings) -> MatchResponse:
    response = MatchResponse.model_validate(match)
    response.state = derive_state(match, settings=settings)
    return response


def _load_match(store: RecordStore, match_id: int) -> Match:
    try:
        match = store.read_match(match_id)
    except StoreError as e:
        raise HTTPException(status_code=503, detail=str(e))
    if not match:
        raise HTTPException(status_code=404, detail="Match not found")
    return match


def _submit_response(result: SubmitResult, store: RecordStore, match_id: int, settings: Settings) -> SubmitResponse:
    raise_for_result(result)
    return SubmitResponse(
        success=True,
        message=result.message,
        warnings=result.warnings,
        advancement=advancement_payload(result.advancement),
        cards_appended=result.cards_appended,
        cards_retracted=result.cards_retracted,
        match=match_payload(_load_match(store, match_id), settings),
    )


# ============================================================================
# Endpoints
# ============================================================================


@router.post("/matches", response_model=MatchResponse, status_code=201)
def create_match(
    request: MatchCreateRequest,
    store: RecordStore = Depends(get_store),
    actor: Actor = Depends(get_actor),
    settings: Settings = Depends(get_settings),
):
    """Schedule a single match (league fixture, or a cup match outside the bracket builder)."""
    if not actor.is_admin:
        raise HTTPException(status_code=403, detail="Only an administrator can schedule matches")
    match = Match(
        scheduled_at=naive_utc(request.scheduled_at),
        home_team_id=request.home_team_id,
        away_team_id=request.away_team_id,
        location=request.location,
        matchday_label=request.matchday_label,
        round_token=normalize_token(request.round_token),
        is_cup_match=request.is_cup_match,
        referee=request.referee,
    )
    try:
        (match,) = store.create_matches([match])
    except StoreError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return match_payload(match, settings)


@router.get("/matches/{match_id}", response_model=MatchResponse)
def get_match(
    match_id: int,
    store: RecordStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    """Match with its derived lifecycle state."""
    return match_payload(_load_match(store, match_id), settings)


@router.patch("/matches/{match_id}", response_model=SubmitResponse)
def update_match(
    match_id: int,
    request: MatchUpdateRequest,
    store: RecordStore = Depends(get_store),
    actor: Actor = Depends(get_actor),
    settings: Settings = Depends(get_settings),
):
    """
    Edit / submit a match.

    Permission and data problems are rejected (403 / 422). Problems in the
    cup advancement or card ledger steps do not undo the save; they come
    back as warnings.
    """
    fields = request.model_dump(exclude_unset=True)
    result = submit_match(store, match_id, fields, actor, settings=settings)
    return _submit_response(result, store, match_id, settings)


@router.post("/matches/{match_id}/shootout", response_model=SubmitResponse)
def shootout(
    match_id: int,
    request: ShootoutRequest,
    store: RecordStore = Depends(get_store),
    actor: Actor = Depends(get_actor),
    settings: Settings = Depends(get_settings),
):
    result = record_shootout(
        store,
        match_id,
        request.winner_side,
        request.home_penalties,
        request.away_penalties,
        actor,
        notes=request.notes,
        settings=settings,
    )
    return _submit_response(result, store, match_id, settings)


@router.post("/matches/{match_id}/lock", response_model=LockResponse)
def lock(
    match_id: int,
    store: RecordStore = Depends(get_store),
    actor: Actor = Depends(get_actor),
    settings: Settings = Depends(get_settings),
):
    result = lock_match(store, match_id, actor)
    raise_for_result(result)
    match = _load_match(store, match_id)
    return LockResponse(success=True, message=result.message, state=derive_state(match, settings=settings))


@router.post("/matches/{match_id}/unlock", response_model=LockResponse)
def unlock(
    match_id: int,
    store: RecordStore = Depends(get_store),
    actor: Actor = Depends(get_actor),
    settings: Settings = Depends(get_settings),
):
    result = unlock_match(store, match_id, actor)
    raise_for_result(result)
    match = _load_match(store, match_id)
    return LockResponse(success=True, message=result.message, state=derive_state(match, settings=settings))


@router.get("/side-effect-failures", response_model=List[SideEffectFailureResponse])
def list_side_effect_failures(
    include_resolved: bool = Query(False),
    store: RecordStore = Depends(get_store),
):
    """Advancement / ledger steps that failed after a match was saved."""
    try:
        return store.list_side_effect_failures(include_resolved=include_resolved)
    except StoreError as e:
        raise HTTPException(status_code=503, detail=str(e))
