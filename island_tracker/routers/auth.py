# island_tracker/routers/auth.py
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from island_tracker.auth.dependencies import get_token_subject
from island_tracker.db.database import get_db
from island_tracker.schemas.schema_user import SettingsItem, SignUpRequest
from island_tracker.services.user_settings import create_user, get_user

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/signup", response_model=SettingsItem, status_code=status.HTTP_201_CREATED)
def signup(
    request: SignUpRequest,
    db: Session = Depends(get_db),
    sub: str = Depends(get_token_subject),
):
    """
    Registers the token subject as a user.
    - The token is issued after password + one-time code verification,
      which happens outside this service.
    - timezone decides when an unfinished day counts as missed.
    """
    if get_user(db, sub) is not None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="user already registered")

    try:
        user = create_user(db, sub, request.name, request.timezone)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return SettingsItem(
        user_id=user.user_id,
        name=user.name,
        timezone=user.timezone,
        updated_at=user.updated_at,
    )
