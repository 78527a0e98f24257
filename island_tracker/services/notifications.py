# island_tracker/services/notifications.py
from __future__ import annotations

import datetime as dt
import enum
import logging
import threading
import uuid
from collections import deque
from typing import Deque, Dict, List, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.date import DateTrigger
from pydantic import BaseModel, ConfigDict

from island_tracker.domain.clock import Clock, SystemClock

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 50
DEFAULT_DISPLAY_SECONDS = 5.0


class NotificationType(str, enum.Enum):
    success = "success"
    error = "error"
    warning = "warning"
    info = "info"


class Notification(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    type: NotificationType
    title: str
    message: str
    timestamp: dt.datetime
    read: bool = False


def mask_uid(uid: str) -> str:
    if not uid:
        return ""
    if len(uid) <= 10:
        return uid[:3] + "..."
    return uid[:6] + "..." + uid[-4:]


class NotificationEmitter:
    """
    Per-user ring buffer of transient notifications.

    - newest first, at most `capacity` entries per user (oldest evicted)
    - every entry also expires `display_seconds` after emission
    Both removal paths are idempotent: whichever runs second finds the entry
    gone and does nothing. Eviction cancels the pending expiry job.
    Without a scheduler only capacity eviction applies; expire() can still
    be called directly.
    """

    def __init__(
        self,
        *,
        capacity: int = DEFAULT_CAPACITY,
        display_seconds: float = DEFAULT_DISPLAY_SECONDS,
        scheduler: Optional[BaseScheduler] = None,
        clock: Optional[Clock] = None,
    ):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.display_seconds = display_seconds
        self.scheduler = scheduler
        self.clock = clock or SystemClock()
        self._buffers: Dict[str, Deque[Notification]] = {}
        self._lock = threading.Lock()

    # --------------------- sink ---------------------
    def emit(
        self,
        user_id: str,
        type: NotificationType,
        title: str,
        message: str,
    ) -> Notification:
        item = Notification(
            id=uuid.uuid4().hex,
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            timestamp=self.clock.now(),
        )

        with self._lock:
            buf = self._buffers.setdefault(user_id, deque(maxlen=self.capacity))
            evicted = buf[-1] if len(buf) == buf.maxlen else None
            buf.appendleft(item)

        if evicted is not None:
            self._cancel_expiry(evicted.id)
        self._schedule_expiry(item)

        logger.info("[notifications] emit user=%s type=%s title=%s", mask_uid(user_id), type.value, title)
        return item

    # --------------------- queries ---------------------
    def list(self, user_id: str) -> List[Notification]:
        with self._lock:
            return list(self._buffers.get(user_id, ()))

    def get(self, user_id: str, notification_id: str) -> Optional[Notification]:
        for item in self.list(user_id):
            if item.id == notification_id:
                return item
        return None

    # --------------------- removal ---------------------
    def expire(self, user_id: str, notification_id: str) -> bool:
        """Removes one entry. Returns False when it was already gone."""
        with self._lock:
            buf = self._buffers.get(user_id)
            if not buf:
                return False
            for item in buf:
                if item.id == notification_id:
                    buf.remove(item)
                    break
            else:
                return False
        return True

    def dismiss(self, user_id: str, notification_id: str) -> bool:
        removed = self.expire(user_id, notification_id)
        if removed:
            self._cancel_expiry(notification_id)
        return removed

    def mark_read(self, user_id: str, notification_id: str) -> Optional[Notification]:
        with self._lock:
            buf = self._buffers.get(user_id)
            if not buf:
                return None
            for index, item in enumerate(buf):
                if item.id == notification_id:
                    updated = item.model_copy(update={"read": True})
                    buf[index] = updated
                    return updated
        return None

    def clear(self, user_id: str) -> int:
        with self._lock:
            buf = self._buffers.pop(user_id, None)
        if not buf:
            return 0
        for item in buf:
            self._cancel_expiry(item.id)
        return len(buf)

    # --------------------- scheduling ---------------------
    @staticmethod
    def _job_id(notification_id: str) -> str:
        return f"notification-expiry:{notification_id}"

    def _schedule_expiry(self, item: Notification) -> None:
        if self.scheduler is None:
            return
        run_date = item.timestamp + dt.timedelta(seconds=self.display_seconds)
        self.scheduler.add_job(
            self.expire,
            DateTrigger(run_date=run_date),
            args=[item.user_id, item.id],
            id=self._job_id(item.id),
            replace_existing=True,
            misfire_grace_time=None,
        )

    def _cancel_expiry(self, notification_id: str) -> None:
        if self.scheduler is None:
            return
        try:
            self.scheduler.remove_job(self._job_id(notification_id))
        except JobLookupError:
            # expiry already ran
            pass
