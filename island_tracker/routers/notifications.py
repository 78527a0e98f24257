# island_tracker/routers/notifications.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request, status

from island_tracker.auth.dependencies import get_current_user
from island_tracker.models.users import User
from island_tracker.services.notifications import Notification, NotificationEmitter

router = APIRouter(prefix="/notifications", tags=["notifications"])


def get_notifier(request: Request) -> NotificationEmitter:
    return request.app.state.notifier


@router.get("", response_model=List[Notification])
def get_all_notifications(
    notifier: NotificationEmitter = Depends(get_notifier),
    current_user: User = Depends(get_current_user),
):
    """Newest first. Entries disappear on their own after the display window."""
    return notifier.list(current_user.user_id)


@router.post("/{notification_id}/read", response_model=Notification)
def read_notification(
    notification_id: str,
    notifier: NotificationEmitter = Depends(get_notifier),
    current_user: User = Depends(get_current_user),
):
    item = notifier.mark_read(current_user.user_id, notification_id)
    if item is None:
        raise HTTPException(status_code=404, detail="notification not found")
    return item


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
def dismiss_notification(
    notification_id: str,
    notifier: NotificationEmitter = Depends(get_notifier),
    current_user: User = Depends(get_current_user),
):
    if not notifier.dismiss(current_user.user_id, notification_id):
        raise HTTPException(status_code=404, detail="notification not found")


@router.delete("", status_code=status.HTTP_200_OK)
def clear_all_notifications(
    notifier: NotificationEmitter = Depends(get_notifier),
    current_user: User = Depends(get_current_user),
):
    return {"deleted": notifier.clear(current_user.user_id)}
