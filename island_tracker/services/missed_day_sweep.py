# island_tracker/services/missed_day_sweep.py
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from island_tracker.auth.principal import Principal
from island_tracker.domain.clock import Clock
from island_tracker.domain.errors import ChallengeError
from island_tracker.models.users import User
from island_tracker.services.challenge_manager import ChallengeManager
from island_tracker.services.challenge_store import SqlChallengeStore
from island_tracker.services.notifications import NotificationEmitter, mask_uid
from island_tracker.services.user_settings import SqlTimezones

logger = logging.getLogger(__name__)


def sweep_missed_days(
    db: Session,
    clock: Clock,
    notifier: Optional[NotificationEmitter] = None,
    *,
    default_timezone: str = "UTC",
    fail_on_missed_makeup: bool = True,
) -> int:
    """
    Periodic job: runs the session-start missed-day check for every user,
    so days roll over to missed even when nobody opens the app.
    Returns the number of users whose challenges changed.

    One failing user does not stop the sweep; the error is logged and the
    next user is processed.
    """
    user_ids = db.execute(select(User.user_id)).scalars().all()
    logger.info("[missed_sweep] now=%s users=%d", clock.now(), len(user_ids))

    store = SqlChallengeStore(db)
    timezones = SqlTimezones(db, default=default_timezone)
    changed = 0

    for user_id in user_ids:
        manager = ChallengeManager(
            Principal(user_id),
            store,
            clock=clock,
            notifier=notifier,
            timezones=timezones,
            fail_on_missed_makeup=fail_on_missed_makeup,
        )
        try:
            before = store.load_challenges(user_id)
            after = manager.initialize_session()
        except (ChallengeError, SQLAlchemyError) as e:
            db.rollback()
            logger.exception("[missed_sweep] ERROR user=%s err=%s", mask_uid(user_id), e)
            continue
        if before != after:
            changed += 1

    logger.info("[missed_sweep] done changed_users=%d", changed)
    return changed
