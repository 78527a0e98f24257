# island_tracker/routers/settings.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from island_tracker.auth.dependencies import get_current_user
from island_tracker.db.database import get_db
from island_tracker.models.users import User
from island_tracker.schemas.schema_user import SettingsItem, UpdateSettingsReq
from island_tracker.services.user_settings import update_timezone

router = APIRouter(prefix="/settings", tags=["settings"])


def _to_item(user: User) -> SettingsItem:
    return SettingsItem(
        user_id=user.user_id,
        name=user.name,
        timezone=user.timezone,
        updated_at=user.updated_at,
    )


@router.get("", response_model=SettingsItem)
def get_settings(current_user: User = Depends(get_current_user)):
    return _to_item(current_user)


@router.patch("", response_model=SettingsItem)
def patch_settings(
    body: UpdateSettingsReq,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Changing the timezone affects the next missed-day check, not past ones."""
    user = update_timezone(db, current_user.user_id, body.timezone)
    return _to_item(user)
