# island_tracker/auth/dependencies.py
from __future__ import annotations

from typing import Optional

from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from island_tracker.auth.principal import Principal
from island_tracker.auth.token_verifier import verify_access_token
from island_tracker.config.settings import settings
from island_tracker.db.database import get_db
from island_tracker.models.users import User
from island_tracker.services.challenge_manager import ChallengeManager
from island_tracker.services.challenge_store import SqlChallengeStore
from island_tracker.services.user_settings import SqlTimezones, get_user

bearer_scheme = HTTPBearer(auto_error=False)


def get_token_subject(
    request: Request,
    bearer: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
) -> str:
    # Authorization: Bearer <token>
    if bearer and getattr(bearer, "scheme", "").lower() == "bearer":
        access_token = bearer.credentials
    else:
        auth = request.headers.get("Authorization")
        if not auth or not auth.startswith("Bearer "):
            raise HTTPException(status.HTTP_401_UNAUTHORIZED, "missing bearer token")
        access_token = auth.replace("Bearer ", "", 1).strip()

    payload = verify_access_token(access_token)
    if payload is None:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "invalid access token")

    sub = payload.get("sub")
    if not sub:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "access token has no sub")
    return sub


def get_current_user(
    sub: str = Depends(get_token_subject),
    db: Session = Depends(get_db),
) -> User:
    user = get_user(db, sub)
    if not user:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "user not registered")
    return user


def get_challenge_manager(
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ChallengeManager:
    return ChallengeManager(
        Principal(current_user.user_id),
        SqlChallengeStore(db),
        clock=request.app.state.clock,
        notifier=request.app.state.notifier,
        timezones=SqlTimezones(db, default=settings.default_timezone),
        challenge_length=settings.challenge_length_days,
        fail_on_missed_makeup=settings.fail_on_missed_makeup,
    )
