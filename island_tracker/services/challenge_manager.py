# island_tracker/services/challenge_manager.py
"""
Challenge collection manager.

Every mutating call follows the same path:
  load the user's whole collection -> locate the challenge (ownership check)
  -> apply a pure lifecycle transition -> save the whole collection
  -> emit notifications.
Notifications go out only after the snapshot write succeeded. When the write
fails a PersistenceError propagates and nothing is emitted.
"""
from __future__ import annotations

import datetime as dt
import logging
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from island_tracker.auth.principal import Authenticator
from island_tracker.domain import lifecycle
from island_tracker.domain.clock import Clock, SystemClock
from island_tracker.domain.day_registry import new_id
from island_tracker.domain.entities import Challenge, ChallengeProgress, ChallengeStatus
from island_tracker.domain.errors import Forbidden, NotAuthenticated, NotFound
from island_tracker.domain.lifecycle import EventKind, LifecycleEvent, Transition
from island_tracker.services.challenge_store import ChallengeStore
from island_tracker.services.notifications import NotificationEmitter, NotificationType, mask_uid
from island_tracker.services.user_settings import StaticTimezones, TimezoneLookup

logger = logging.getLogger(__name__)


def _notification_for(event: LifecycleEvent, challenge: Challenge) -> Optional[Tuple[NotificationType, str, str]]:
    if event.kind == EventKind.day_completed:
        return (
            NotificationType.success,
            f"Day {event.day_number} Completed! 🎉",
            "Great job! Keep up the momentum.",
        )
    if event.kind == EventKind.day_compensated:
        return (
            NotificationType.success,
            "Make-up Day Completed!",
            "You've successfully compensated for a missed day. Keep going!",
        )
    if event.kind == EventKind.days_missed:
        return (
            NotificationType.warning,
            f"Day {event.day_number} Missed",
            "Add a make-up day to keep your challenge on track.",
        )
    if event.kind == EventKind.challenge_completed:
        return (
            NotificationType.success,
            "🎉 Challenge Completed!",
            f"Congratulations! You have successfully completed the {challenge.total_days}-day challenge!",
        )
    if event.kind == EventKind.challenge_failed:
        return (
            NotificationType.error,
            "Challenge Failed ❌",
            "You did not complete the make-up day. This challenge is now incomplete.",
        )
    return None


class ChallengeManager:
    """Owns one user's challenge collection for the duration of a session or request."""

    def __init__(
        self,
        auth: Authenticator,
        store: ChallengeStore,
        *,
        clock: Optional[Clock] = None,
        notifier: Optional[NotificationEmitter] = None,
        timezones: Optional[TimezoneLookup] = None,
        challenge_length: int = lifecycle.DEFAULT_LENGTH_DAYS,
        fail_on_missed_makeup: bool = True,
        id_factory: Callable[[], str] = new_id,
    ):
        self.auth = auth
        self.store = store
        self.clock = clock or SystemClock()
        self.notifier = notifier
        self.timezones = timezones or StaticTimezones()
        self.challenge_length = challenge_length
        self.fail_on_missed_makeup = fail_on_missed_makeup
        self.id_factory = id_factory
        self._current_id: Optional[str] = None

    # --------------------- session ---------------------
    def initialize_session(self) -> List[Challenge]:
        """
        Runs missed-day detection over every active challenge of the user.
        Writes a single snapshot, and only if something changed.
        """
        user_id = self._require_user()
        collection = self.store.load_challenges(user_id)
        now = self.clock.now()
        tz = self.timezones.timezone_for(user_id)

        transitions: List[Transition] = []
        for index, challenge in enumerate(collection):
            if not challenge.is_active:
                continue
            t = self._detect_step(challenge, now, tz)
            if t.changed:
                collection[index] = t.challenge
                transitions.append(t)

        if transitions:
            self._save(user_id, collection)
            for t in transitions:
                self._notify(user_id, t)
            logger.info(
                "[challenge_manager] session init user=%s updated=%d",
                mask_uid(user_id), len(transitions),
            )
        return [c for c in collection if c.user_id == user_id]

    # --------------------- collection ---------------------
    def create_challenge(
        self,
        title: str,
        description: str = "",
        execution_details: str = "",
        start_date: Optional[dt.datetime] = None,
    ) -> Challenge:
        user_id = self._require_user()
        now = self.clock.now()
        challenge = lifecycle.new_challenge(
            user_id=user_id,
            title=title,
            description=description,
            execution_details=execution_details,
            start_date=start_date or now,
            now=now,
            length_days=self.challenge_length,
            id_factory=self.id_factory,
        )
        collection = self.store.load_challenges(user_id)
        collection.append(challenge)
        self._save(user_id, collection)
        self._current_id = challenge.id
        logger.info("[challenge_manager] created challenge=%s user=%s", challenge.id, mask_uid(user_id))
        return challenge

    def list_challenges(self, status: Optional[ChallengeStatus] = None) -> List[Challenge]:
        user_id = self._require_user()
        return [
            c
            for c in self.store.load_challenges(user_id)
            if c.user_id == user_id and (status is None or c.status == status)
        ]

    def active_challenges(self) -> List[Challenge]:
        return self.list_challenges(ChallengeStatus.active)

    def completed_challenges(self) -> List[Challenge]:
        return self.list_challenges(ChallengeStatus.completed)

    def failed_challenges(self) -> List[Challenge]:
        return self.list_challenges(ChallengeStatus.failed)

    def get_challenge(self, challenge_id: str) -> Challenge:
        user_id = self._require_user()
        _, challenge = self._locate(user_id, self.store.load_challenges(user_id), challenge_id)
        return challenge

    def progress(self, challenge_id: str) -> ChallengeProgress:
        return self.get_challenge(challenge_id).progress()

    def set_current_challenge(self, challenge_id: str) -> Challenge:
        challenge = self.get_challenge(challenge_id)
        self._current_id = challenge.id
        return challenge

    def current_challenge(self) -> Optional[Challenge]:
        # re-read each time so callers never hold a stale copy
        if self._current_id is None:
            return None
        try:
            return self.get_challenge(self._current_id)
        except NotFound:
            self._current_id = None
            return None

    # --------------------- day operations ---------------------
    def complete_day(
        self,
        challenge_id: str,
        day_number: int,
        note: str = "",
        proof_files: Iterable[str] = (),
    ) -> Challenge:
        now = self.clock.now()
        proofs = tuple(proof_files)

        def step(challenge: Challenge) -> Transition:
            return lifecycle.complete_day(
                challenge, day_number, note=note, proof_files=proofs, now=now
            ).then(lambda c: lifecycle.evaluate_completion(c, now))

        return self._mutate(challenge_id, step)

    def detect_missed(self, challenge_id: str, now: Optional[dt.datetime] = None) -> Challenge:
        user_id = self._require_user()
        at = now or self.clock.now()
        tz = self.timezones.timezone_for(user_id)
        return self._mutate(challenge_id, lambda c: self._detect_step(c, at, tz))

    def add_makeup_slots(self, challenge_id: str, count: int) -> Challenge:
        return self._mutate(
            challenge_id,
            lambda c: lifecycle.add_makeup_slots(c, count, id_factory=self.id_factory),
        )

    def compensate(self, challenge_id: str, makeup_day_id: str) -> Challenge:
        now = self.clock.now()
        return self._mutate(
            challenge_id,
            lambda c: lifecycle.compensate(c, makeup_day_id).then(
                lambda c2: lifecycle.evaluate_completion(c2, now)
            ),
        )

    # --------------------- challenge operations ---------------------
    def evaluate_completion(self, challenge_id: str) -> Challenge:
        now = self.clock.now()
        return self._mutate(challenge_id, lambda c: lifecycle.evaluate_completion(c, now))

    def fail_challenge(self, challenge_id: str) -> Challenge:
        return self._mutate(challenge_id, lifecycle.fail)

    def restart_challenge(self, challenge_id: str) -> Challenge:
        """Archives the challenge and returns the fresh one that replaces it."""
        user_id = self._require_user()
        collection = self.store.load_challenges(user_id)
        index, challenge = self._locate(user_id, collection, challenge_id)

        old, fresh = lifecycle.restart(
            challenge,
            self.clock.now(),
            length_days=self.challenge_length,
            id_factory=self.id_factory,
        )
        collection[index] = old.challenge
        collection.append(fresh)
        self._save(user_id, collection)
        self._notify(user_id, old)
        self._current_id = fresh.id
        logger.info(
            "[challenge_manager] restarted challenge=%s -> %s user=%s",
            challenge.id, fresh.id, mask_uid(user_id),
        )
        return fresh

    # --------------------- helpers ---------------------
    def _require_user(self) -> str:
        if not self.auth.is_authenticated():
            raise NotAuthenticated("authentication required")
        user_id = self.auth.current_user_id()
        if not user_id:
            raise NotAuthenticated("authentication required")
        return user_id

    def _locate(
        self,
        user_id: str,
        collection: Sequence[Challenge],
        challenge_id: str,
    ) -> Tuple[int, Challenge]:
        for index, challenge in enumerate(collection):
            if challenge.id == challenge_id:
                if challenge.user_id != user_id:
                    raise Forbidden(f"challenge {challenge_id} belongs to another user")
                return index, challenge

        owner = self.store.owner_of(challenge_id)
        if owner is not None and owner != user_id:
            logger.warning(
                "[challenge_manager] forbidden access challenge=%s by user=%s",
                challenge_id, mask_uid(user_id),
            )
            raise Forbidden(f"challenge {challenge_id} belongs to another user")
        raise NotFound(f"challenge {challenge_id} not found")

    def _detect_step(self, challenge: Challenge, now: dt.datetime, tz: str) -> Transition:
        t = lifecycle.detect_missed(challenge, now, tz)
        if self.fail_on_missed_makeup and lifecycle.missed_makeup_days(t.challenge, t.events):
            t = t.then(lifecycle.fail)
        return t

    def _mutate(self, challenge_id: str, step: Callable[[Challenge], Transition]) -> Challenge:
        user_id = self._require_user()
        collection = self.store.load_challenges(user_id)
        index, challenge = self._locate(user_id, collection, challenge_id)

        t = step(challenge)
        if not t.changed:
            return challenge

        collection[index] = t.challenge
        self._save(user_id, collection)
        self._notify(user_id, t)
        return t.challenge

    def _save(self, user_id: str, collection: List[Challenge]) -> None:
        self.store.save_challenges(user_id, collection)

    def _notify(self, user_id: str, t: Transition) -> None:
        if self.notifier is None:
            return
        for event in t.events:
            payload = _notification_for(event, t.challenge)
            if payload is None:
                continue
            kind, title, message = payload
            self.notifier.emit(user_id, kind, title, message)
