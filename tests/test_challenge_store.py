import datetime as dt
import unittest
from unittest import mock

from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import island_tracker.models  # noqa: F401
from island_tracker.auth.principal import Principal
from island_tracker.db.database import Base
from island_tracker.domain import lifecycle
from island_tracker.domain.entities import ChallengeStatus, DayStatus
from island_tracker.domain.clock import FixedClock
from island_tracker.domain.errors import InvalidTimezone, NotFound, PersistenceError
from island_tracker.services.challenge_manager import ChallengeManager
from island_tracker.services.challenge_store import InMemoryChallengeStore, SqlChallengeStore
from island_tracker.services.missed_day_sweep import sweep_missed_days
from island_tracker.services.notifications import NotificationEmitter
from island_tracker.services.user_settings import (
    SqlTimezones,
    StaticTimezones,
    create_user,
    get_user,
    update_timezone,
)
from tests.support import T0, SequentialIds, day_at


def make_sessionmaker():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def make_session():
    return make_sessionmaker()()


def sample(user_id="user-a", prefix="c"):
    c = lifecycle.new_challenge(
        user_id=user_id,
        title="Run",
        description="5k",
        execution_details="",
        start_date=T0,
        now=T0,
        id_factory=SequentialIds(prefix),
    )
    c = lifecycle.complete_day(c, 1, note="done", proof_files=["p.jpg"], now=day_at(1, 2)).challenge
    c = lifecycle.detect_missed(c, day_at(3, 1), "UTC").challenge
    c = lifecycle.add_makeup_slots(c, 1, id_factory=SequentialIds(prefix + "m")).challenge
    return lifecycle.compensate(c, c.day_by_number(31).id).challenge


class SqlChallengeStoreTest(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()
        create_user(self.db, "user-a", "Alice", "UTC")
        create_user(self.db, "user-b", "Bob", "Asia/Seoul")
        self.store = SqlChallengeStore(self.db)

    def tearDown(self) -> None:
        self.db.close()

    def test_round_trip(self) -> None:
        original = sample()
        self.store.save_challenges("user-a", [original])

        loaded = self.store.load_challenges("user-a")
        self.assertEqual(len(loaded), 1)
        c = loaded[0]
        self.assertEqual(c, original)
        self.assertEqual(c.missed_days, original.missed_days)
        self.assertEqual(c.compensated_days, original.compensated_days)
        self.assertEqual(c.day_by_number(1).proof_files, ("p.jpg",))
        self.assertEqual(c.day_by_number(1).completed_at, day_at(1, 2))
        self.assertEqual(c.start_date.tzinfo, dt.timezone.utc)

    def test_save_replaces_the_whole_collection(self) -> None:
        first = sample(prefix="c")
        second = sample(prefix="d")
        self.store.save_challenges("user-a", [first, second])
        self.store.load_challenges("user-a")

        kept = lifecycle.fail(second).challenge
        self.store.save_challenges("user-a", [kept])

        loaded = self.store.load_challenges("user-a")
        self.assertEqual([c.id for c in loaded], [second.id])
        self.assertEqual(loaded[0].status, ChallengeStatus.failed)

    def test_users_are_isolated(self) -> None:
        self.store.save_challenges("user-a", [sample("user-a", "c")])
        self.store.save_challenges("user-b", [sample("user-b", "d")])
        self.store.save_challenges("user-a", [])

        self.assertEqual(self.store.load_challenges("user-a"), [])
        self.assertEqual(len(self.store.load_challenges("user-b")), 1)
        self.assertEqual(self.store.owner_of("d0001"), "user-b")
        self.assertIsNone(self.store.owner_of("c0001"))

    def test_refuses_foreign_challenges(self) -> None:
        with self.assertRaises(PersistenceError):
            self.store.save_challenges("user-a", [sample("user-b")])

    def test_database_error_becomes_persistence_error(self) -> None:
        Base.metadata.drop_all(bind=self.db.get_bind())
        with self.assertRaises(PersistenceError):
            self.store.save_challenges("user-a", [sample()])
        with self.assertRaises(PersistenceError):
            self.store.load_challenges("user-a")


class InMemoryChallengeStoreTest(unittest.TestCase):
    def test_snapshot_and_failure_injection(self) -> None:
        store = InMemoryChallengeStore()
        c = sample()
        store.save_challenges("user-a", [c])
        self.assertEqual(store.load_challenges("user-a"), [c])
        self.assertEqual(store.owner_of(c.id), "user-a")

        store.fail_next_save = True
        with self.assertRaises(PersistenceError):
            store.save_challenges("user-a", [])
        self.assertEqual(store.load_challenges("user-a"), [c])
        self.assertEqual(store.save_count, 1)


class UserSettingsTest(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()

    def tearDown(self) -> None:
        self.db.close()

    def test_create_and_update(self) -> None:
        create_user(self.db, "user-a", "Alice", "UTC")
        with self.assertRaises(ValueError):
            create_user(self.db, "user-a", "Alice", "UTC")

        update_timezone(self.db, "user-a", "Asia/Seoul")
        self.assertEqual(get_user(self.db, "user-a").timezone, "Asia/Seoul")
        self.assertEqual(SqlTimezones(self.db).timezone_for("user-a"), "Asia/Seoul")
        self.assertEqual(SqlTimezones(self.db, default="Europe/Paris").timezone_for("nobody"), "Europe/Paris")

    def test_rejects_unknown_timezone(self) -> None:
        with self.assertRaises(InvalidTimezone):
            create_user(self.db, "user-a", "Alice", "Mars/Olympus_Mons")
        create_user(self.db, "user-a", "Alice", "UTC")
        with self.assertRaises(InvalidTimezone):
            update_timezone(self.db, "user-a", "Nowhere/City")

    def test_update_unknown_user(self) -> None:
        with self.assertRaises(NotFound):
            update_timezone(self.db, "ghost", "UTC")


class MissedDaySweepTest(unittest.TestCase):
    def test_sweep_marks_missed_days_for_every_user(self) -> None:
        db = make_session()
        self.addCleanup(db.close)
        create_user(db, "user-a", "Alice", "UTC")
        create_user(db, "user-b", "Bob", "UTC")
        store = SqlChallengeStore(db)
        fresh = lifecycle.new_challenge(
            user_id="user-a",
            title="Run",
            description="",
            execution_details="",
            start_date=T0,
            now=T0,
            id_factory=SequentialIds("c"),
        )
        store.save_challenges("user-a", [fresh])

        clock = FixedClock(day_at(3, 1))
        notifier = NotificationEmitter(clock=clock)
        changed = sweep_missed_days(db, clock, notifier)

        self.assertEqual(changed, 1)
        c = store.load_challenges("user-a")[0]
        self.assertEqual([c.day_by_id(i).day_number for i in c.missed_days], [1, 2])
        self.assertEqual(c.day_by_number(3).status, DayStatus.pending)
        self.assertEqual(len(notifier.list("user-a")), 2)

        # second run at the same instant changes nothing
        self.assertEqual(sweep_missed_days(db, clock, notifier), 0)

    def test_one_failing_user_does_not_stop_the_sweep(self) -> None:
        db = make_session()
        self.addCleanup(db.close)
        create_user(db, "user-a", "Alice", "UTC")
        create_user(db, "user-b", "Bob", "UTC")
        store = SqlChallengeStore(db)
        store.save_challenges("user-a", [sample("user-a", "c")])
        store.save_challenges("user-b", [sample("user-b", "d")])

        real_lookup = SqlTimezones.timezone_for

        def flaky_lookup(self, user_id):
            if user_id == "user-a":
                raise OperationalError("SELECT users", {}, Exception("database is locked"))
            return real_lookup(self, user_id)

        clock = FixedClock(day_at(10, 1))
        with mock.patch.object(SqlTimezones, "timezone_for", flaky_lookup):
            changed = sweep_missed_days(db, clock)

        self.assertEqual(changed, 1)
        self.assertEqual(len(store.load_challenges("user-a")[0].missed_days), 0)
        self.assertGreater(len(store.load_challenges("user-b")[0].missed_days), 0)


class ConcurrentWriterTest(unittest.TestCase):
    def setUp(self) -> None:
        Session = make_sessionmaker()
        self.request_db = Session()
        self.sweep_db = Session()
        self.addCleanup(self.request_db.close)
        self.addCleanup(self.sweep_db.close)
        create_user(self.request_db, "user-a", "Alice", "UTC")

    def test_stale_snapshot_is_refused(self) -> None:
        first = SqlChallengeStore(self.request_db)
        second = SqlChallengeStore(self.sweep_db)
        first.save_challenges("user-a", [sample()])

        first.load_challenges("user-a")
        loaded = second.load_challenges("user-a")
        second.save_challenges("user-a", [lifecycle.fail(loaded[0]).challenge])

        with self.assertRaises(PersistenceError):
            first.save_challenges("user-a", [])
        self.assertEqual(len(second.load_challenges("user-a")), 1)

        # reloading picks up the new revision
        first.load_challenges("user-a")
        first.save_challenges("user-a", [])
        self.assertEqual(second.load_challenges("user-a"), [])

    def test_sweep_cannot_undo_a_completion_made_while_it_ran(self) -> None:
        clock = FixedClock(T0)
        notifier = NotificationEmitter(clock=clock)
        request = ChallengeManager(
            Principal("user-a"),
            SqlChallengeStore(self.request_db),
            clock=clock,
            notifier=notifier,
            timezones=StaticTimezones(),
        )
        c = request.create_challenge("Run")
        clock.set(day_at(2))

        class CompletionDuringSave(SqlChallengeStore):
            fired = False

            def save_challenges(self, user_id, challenges):
                if not self.fired:
                    self.fired = True
                    request.complete_day(c.id, 2)
                super().save_challenges(user_id, challenges)

        sweep = ChallengeManager(
            Principal("user-a"),
            CompletionDuringSave(self.sweep_db),
            clock=clock,
            notifier=notifier,
            timezones=StaticTimezones(),
        )
        with self.assertRaises(PersistenceError):
            sweep.initialize_session()

        stored = request.get_challenge(c.id)
        self.assertEqual(stored.day_by_number(2).status, DayStatus.completed)
        self.assertEqual(stored.day_by_number(1).status, DayStatus.pending)
        self.assertEqual([n.title for n in notifier.list("user-a")], ["Day 2 Completed! 🎉"])

        # the next sweep starts from the stored snapshot and keeps the completion
        self.assertEqual(sweep_missed_days(self.sweep_db, clock, notifier), 1)
        stored = request.get_challenge(c.id)
        self.assertEqual(stored.day_by_number(1).status, DayStatus.missed)
        self.assertEqual(stored.day_by_number(2).status, DayStatus.completed)


if __name__ == "__main__":
    unittest.main()
