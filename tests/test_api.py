import unittest

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from island_tracker.auth.dependencies import get_challenge_manager
from island_tracker.auth.principal import Principal
from island_tracker.auth.token_verifier import issue_access_token
from island_tracker.db.database import Base, get_db
from island_tracker.domain.clock import FixedClock
from island_tracker.main import create_app
from island_tracker.services.challenge_manager import ChallengeManager
from island_tracker.services.challenge_store import InMemoryChallengeStore
from island_tracker.services.notifications import NotificationEmitter
from tests.support import T0, day_at


def auth(user_id):
    return {"Authorization": f"Bearer {issue_access_token(user_id)}"}


class ApiTestCase(unittest.TestCase):
    def setUp(self) -> None:
        engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(bind=engine)
        TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)

        def override_get_db():
            db = TestingSession()
            try:
                yield db
            finally:
                db.close()

        self.app = create_app()
        self.app.dependency_overrides[get_db] = override_get_db
        self.clock = FixedClock(T0)
        self.app.state.clock = self.clock
        self.app.state.notifier = NotificationEmitter(clock=self.clock)
        # lifespan (scheduler + create_all) is not run outside a `with` block
        self.client = TestClient(self.app)

    def signup(self, user_id, timezone="UTC"):
        res = self.client.post(
            "/auth/signup", json={"name": user_id, "timezone": timezone}, headers=auth(user_id)
        )
        self.assertEqual(res.status_code, 201, res.text)
        return res.json()


class AuthAndSettingsTest(ApiTestCase):
    def test_signup_and_settings(self) -> None:
        body = self.signup("user-a", "Asia/Seoul")
        self.assertEqual(body["timezone"], "Asia/Seoul")

        dup = self.client.post("/auth/signup", json={"name": "again"}, headers=auth("user-a"))
        self.assertEqual(dup.status_code, 400)

        res = self.client.get("/settings", headers=auth("user-a"))
        self.assertEqual(res.json()["timezone"], "Asia/Seoul")

        res = self.client.patch("/settings", json={"timezone": "Europe/Paris"}, headers=auth("user-a"))
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["timezone"], "Europe/Paris")

    def test_unknown_timezone_is_rejected(self) -> None:
        res = self.client.post(
            "/auth/signup", json={"name": "x", "timezone": "Mars/Base"}, headers=auth("user-a")
        )
        self.assertEqual(res.status_code, 422)

    def test_missing_or_bad_token(self) -> None:
        self.assertEqual(self.client.get("/challenges").status_code, 401)
        res = self.client.get("/challenges", headers={"Authorization": "Bearer not-a-token"})
        self.assertEqual(res.status_code, 401)

    def test_unregistered_user(self) -> None:
        self.assertEqual(self.client.get("/challenges", headers=auth("ghost")).status_code, 404)


class ChallengeApiTest(ApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.signup("user-a")
        self.headers = auth("user-a")
        res = self.client.post("/challenges", json={"title": "Morning run"}, headers=self.headers)
        self.assertEqual(res.status_code, 201, res.text)
        self.challenge = res.json()
        self.cid = self.challenge["id"]

    def test_created_challenge(self) -> None:
        c = self.challenge
        self.assertEqual(c["status"], "active")
        self.assertEqual(c["total_days"], 30)
        self.assertEqual(len(c["days"]), 30)
        self.assertEqual(c["progress"]["pending"], 30)

    def test_day_flow(self) -> None:
        res = self.client.post(f"/challenges/{self.cid}/days/1/complete", json={"note": "ok"}, headers=self.headers)
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["days"][0]["status"], "completed")

        # opening the list runs missed-day detection
        self.clock.set(day_at(3, 1))
        res = self.client.get("/challenges", headers=self.headers)
        c = res.json()[0]
        self.assertEqual([d["status"] for d in c["days"][:3]], ["completed", "missed", "pending"])
        self.assertEqual(c["progress"]["missed"], 1)

        res = self.client.post(f"/challenges/{self.cid}/days/2/complete", json={}, headers=self.headers)
        self.assertEqual(res.status_code, 409)

        res = self.client.post(f"/challenges/{self.cid}/makeup-days", json={"count": 1}, headers=self.headers)
        c = res.json()
        self.assertEqual(c["total_days"], 31)
        makeup_id = c["days"][30]["id"]
        self.assertTrue(c["days"][30]["is_extension_day"])

        res = self.client.post(
            f"/challenges/{self.cid}/compensate", json={"makeup_day_id": makeup_id}, headers=self.headers
        )
        c = res.json()
        self.assertEqual(c["days"][1]["status"], "compensated")
        self.assertEqual(c["days"][1]["compensates_day"], makeup_id)
        self.assertEqual(c["missed_days"], [])

        res = self.client.get(f"/challenges/{self.cid}/progress", headers=self.headers)
        self.assertEqual(res.json()["resolved"], 2)

        res = self.client.get("/notifications", headers=self.headers)
        titles = [n["title"] for n in res.json()]
        self.assertEqual(titles, ["Make-up Day Completed!", "Day 2 Missed", "Day 1 Completed! 🎉"])

    def test_detect_missed_uses_server_clock(self) -> None:
        # a client supplied instant is ignored
        res = self.client.post(
            f"/challenges/{self.cid}/detect-missed",
            json={"now": day_at(31, 1).isoformat()},
            headers=self.headers,
        )
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["missed_days"], [])
        self.assertTrue(all(d["status"] == "pending" for d in res.json()["days"]))

        self.clock.set(day_at(2, 1))
        res = self.client.post(f"/challenges/{self.cid}/detect-missed", headers=self.headers)
        statuses = [d["status"] for d in res.json()["days"]]
        self.assertEqual(statuses[:2], ["missed", "pending"])
        self.assertEqual(statuses.count("missed"), 1)

    def test_other_user_is_forbidden(self) -> None:
        self.signup("user-b")
        res = self.client.get(f"/challenges/{self.cid}", headers=auth("user-b"))
        self.assertEqual(res.status_code, 403)
        self.assertEqual(self.client.get("/challenges", headers=auth("user-b")).json(), [])

    def test_unknown_challenge(self) -> None:
        self.assertEqual(self.client.get("/challenges/nope", headers=self.headers).status_code, 404)

    def test_restart_and_status_filter(self) -> None:
        self.clock.set(day_at(2))
        res = self.client.post(f"/challenges/{self.cid}/restart", headers=self.headers)
        self.assertEqual(res.status_code, 201)
        fresh = res.json()
        self.assertNotEqual(fresh["id"], self.cid)

        archived = self.client.get("/challenges", params={"status": "archived"}, headers=self.headers).json()
        self.assertEqual([c["id"] for c in archived], [self.cid])
        active = self.client.get("/challenges", params={"status": "active"}, headers=self.headers).json()
        self.assertEqual([c["id"] for c in active], [fresh["id"]])

        res = self.client.post(f"/challenges/{self.cid}/fail", headers=self.headers)
        self.assertEqual(res.status_code, 409)

    def test_notification_endpoints(self) -> None:
        self.client.post(f"/challenges/{self.cid}/days/1/complete", json={}, headers=self.headers)
        self.client.post(f"/challenges/{self.cid}/days/2/complete", json={}, headers=self.headers)
        items = self.client.get("/notifications", headers=self.headers).json()
        self.assertEqual(len(items), 2)

        res = self.client.post(f"/notifications/{items[0]['id']}/read", headers=self.headers)
        self.assertTrue(res.json()["read"])

        self.assertEqual(self.client.delete(f"/notifications/{items[0]['id']}", headers=self.headers).status_code, 204)
        self.assertEqual(self.client.delete(f"/notifications/{items[0]['id']}", headers=self.headers).status_code, 404)
        self.assertEqual(self.client.delete("/notifications", headers=self.headers).json(), {"deleted": 1})


class PersistenceFailureApiTest(ApiTestCase):
    def test_failed_write_maps_to_503(self) -> None:
        self.signup("user-a")
        store = InMemoryChallengeStore()
        manager = ChallengeManager(Principal("user-a"), store, clock=self.clock, notifier=self.app.state.notifier)
        self.app.dependency_overrides[get_challenge_manager] = lambda: manager

        store.fail_next_save = True
        res = self.client.post("/challenges", json={"title": "Run"}, headers=auth("user-a"))
        self.assertEqual(res.status_code, 503)
        self.assertEqual(self.client.get("/challenges", headers=auth("user-a")).json(), [])


if __name__ == "__main__":
    unittest.main()
