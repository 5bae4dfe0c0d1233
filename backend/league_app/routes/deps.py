"""
Shared route dependencies.

Authentication is handled upstream; the acting role arrives in the
X-Actor-Role header and, for team representatives, the team in
X-Actor-Team-Id.
"""
from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlmodel import Session

from league_app.database import get_session
from league_app.services.actors import Actor, ActorRole
from league_app.services.record_store import RecordStore
from league_app.services.results import ErrorKind

ERROR_STATUS = {
    ErrorKind.VALIDATION: 422,
    ErrorKind.UNAUTHORIZED: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.STORE: 503,
}


def get_store(session: Session = Depends(get_session)) -> RecordStore:
    return RecordStore(session)


def get_actor(
    x_actor_role: Optional[str] = Header(default=None),
    x_actor_team_id: Optional[int] = Header(default=None),
    x_actor_name: Optional[str] = Header(default=None),
) -> Actor:
    if not x_actor_role:
        raise HTTPException(status_code=401, detail="X-Actor-Role header is required")
    try:
        role = ActorRole(x_actor_role.strip().lower())
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown actor role '{x_actor_role}'")
    if role is ActorRole.TEAM_REP and x_actor_team_id is None:
        raise HTTPException(status_code=400, detail="Team representatives must send X-Actor-Team-Id")
    return Actor(role=role, team_id=x_actor_team_id, name=x_actor_name)


def raise_for_result(result) -> None:
    """Turn a failed service result into the matching HTTPException."""
    if result.success:
        return
    status = ERROR_STATUS.get(result.error_kind, 400)
    raise HTTPException(status_code=status, detail=result.error or result.message)
