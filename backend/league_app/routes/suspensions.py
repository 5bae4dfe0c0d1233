"""
Suspension & eligibility API Routes
"""

from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field

from league_app.config import Settings, get_settings
from league_app.routes.deps import get_actor, get_store, raise_for_result
from league_app.services.actors import Actor
from league_app.services.card_ledger import card_totals
from league_app.services.match_lifecycle import naive_utc
from league_app.services.record_store import RecordStore, StoreError
from league_app.services.suspension_engine import (
    SuspensionRules,
    apply_manual_suspension,
    deactivate_manual_suspension,
    get_eligibility,
    get_suspensions,
)

router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================


class EligibilityRequest(BaseModel):
    player_ids: List[int]
    match_date: datetime


class EligibilityResponse(BaseModel):
    eligibility: Dict[int, bool]
    errors: List[str] = []


class SuspensionStateResponse(BaseModel):
    player_id: int
    team_id: Optional[int] = None
    yellow_cards: int
    red_cards: int
    double_yellow_cards: int
    manual_matches: int
    matches_owed: int
    matches_served: int
    matches_remaining: int
    eligible: bool
    sits_out_match_ids: List[int] = []


class SuspensionListResponse(BaseModel):
    suspensions: List[SuspensionStateResponse]
    errors: List[str] = []


class CardTotalsResponse(BaseModel):
    player_id: int
    yellow: int
    double_yellow: int
    red: int
    match_ids: List[int] = []


class ManualSuspensionRequest(BaseModel):
    player_id: int
    reason: str
    matches: int = Field(ge=1)
    effective_from: Optional[datetime] = None
    notes: Optional[str] = None


class ManualSuspensionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    player_id: int
    reason: str
    matches: int
    effective_from: datetime
    notes: Optional[str] = None
    is_active: bool
    created_by: Optional[str] = None


# ============================================================================
# Endpoints
# ============================================================================


@router.post("/eligibility", response_model=EligibilityResponse)
def eligibility(
    request: EligibilityRequest,
    store: RecordStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    """
    Eligibility per player for a match on match_date.

    Never fails as a whole: players whose status cannot be determined are
    reported eligible and the problem is listed in errors.
    """
    result = get_eligibility(
        store, request.player_ids, naive_utc(request.match_date), SuspensionRules.from_settings(settings)
    )
    return EligibilityResponse(eligibility=result.eligibility, errors=result.errors)


@router.get("/suspensions", response_model=SuspensionListResponse)
def list_suspensions(
    team_id: Optional[int] = Query(None),
    as_of: Optional[datetime] = Query(None),
    store: RecordStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    report = get_suspensions(store, team_id, naive_utc(as_of), SuspensionRules.from_settings(settings))
    if report.errors and not report.states:
        raise HTTPException(status_code=503, detail="; ".join(report.errors))
    return SuspensionListResponse(
        suspensions=[
            SuspensionStateResponse(
                player_id=s.player_id,
                team_id=s.team_id,
                yellow_cards=s.yellow_cards,
                red_cards=s.red_cards,
                double_yellow_cards=s.double_yellow_cards,
                manual_matches=s.manual_matches,
                matches_owed=s.matches_owed,
                matches_served=s.matches_served,
                matches_remaining=s.matches_remaining,
                eligible=s.eligible,
                sits_out_match_ids=s.sits_out_match_ids,
            )
            for s in report.states
        ],
        errors=report.errors,
    )


@router.get("/cards", response_model=List[CardTotalsResponse])
def list_card_totals(team_id: Optional[int] = Query(None), store: RecordStore = Depends(get_store)):
    """Effective (non-retracted) cards per player from the ledger."""
    try:
        records = store.read_cards_for_team(team_id)
    except StoreError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    totals = card_totals(records)
    return [
        CardTotalsResponse(
            player_id=player_id,
            yellow=t.yellow,
            double_yellow=t.double_yellow,
            red=t.red,
            match_ids=sorted(t.matches),
        )
        for player_id, t in sorted(totals.items())
    ]


@router.post("/suspensions/manual", response_model=ManualSuspensionResponse, status_code=201)
def create_manual_suspension(
    request: ManualSuspensionRequest,
    store: RecordStore = Depends(get_store),
    actor: Actor = Depends(get_actor),
):
    result = apply_manual_suspension(
        store,
        actor,
        request.player_id,
        request.reason,
        request.matches,
        effective_from=naive_utc(request.effective_from),
        notes=request.notes,
    )
    raise_for_result(result)
    return result.suspension


@router.delete("/suspensions/manual/{suspension_id}", response_model=ManualSuspensionResponse)
def lift_manual_suspension(
    suspension_id: int,
    store: RecordStore = Depends(get_store),
    actor: Actor = Depends(get_actor),
):
    result = deactivate_manual_suspension(store, actor, suspension_id)
    raise_for_result(result)
    return result.suspension
