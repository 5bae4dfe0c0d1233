"""
Team Management API Routes
Teams and their player lists (the pool rosters are picked from).
"""

from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from league_app.database import get_session
from league_app.models.player import Player
from league_app.models.team import Team

router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================


class TeamCreateRequest(BaseModel):
    name: str


class TeamResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    created_at: datetime


class PlayerCreateRequest(BaseModel):
    first_name: str
    last_name: str
    is_active: bool = True


class PlayerResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    team_id: int
    first_name: str
    last_name: str
    is_active: bool
    created_at: datetime


# ============================================================================
# Endpoints
# ============================================================================


@router.get("/teams", response_model=List[TeamResponse])
def get_teams(session: Session = Depends(get_session)):
    """All teams, by name."""
    return session.exec(select(Team).order_by(Team.name)).all()


@router.post("/teams", response_model=TeamResponse, status_code=201)
def create_team(request: TeamCreateRequest, session: Session = Depends(get_session)):
    name = request.name.strip()
    if not name:
        raise HTTPException(status_code=422, detail="Team name is required")

    team = Team(name=name)
    try:
        session.add(team)
        session.commit()
        session.refresh(team)
        return team
    except IntegrityError:
        session.rollback()
        raise HTTPException(status_code=409, detail=f"Team with name '{name}' already exists")


@router.get("/teams/{team_id}/players", response_model=List[PlayerResponse])
def get_players(team_id: int, session: Session = Depends(get_session)):
    team = session.get(Team, team_id)
    if not team:
        raise HTTPException(status_code=404, detail="Team not found")
    query = select(Player).where(Player.team_id == team_id).order_by(Player.last_name, Player.first_name)
    return session.exec(query).all()


@router.post("/teams/{team_id}/players", response_model=PlayerResponse, status_code=201)
def create_player(team_id: int, request: PlayerCreateRequest, session: Session = Depends(get_session)):
    team = session.get(Team, team_id)
    if not team:
        raise HTTPException(status_code=404, detail="Team not found")

    player = Player(
        team_id=team_id,
        first_name=request.first_name.strip(),
        last_name=request.last_name.strip(),
        is_active=request.is_active,
    )
    session.add(player)
    session.commit()
    session.refresh(player)
    return player
