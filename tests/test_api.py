import datetime
import os
import sys
import unittest

from fastapi.testclient import TestClient

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from algorithms import EnergyCalculator
from rest_api import TrainlyticsAPI
from session_timeout import SESSION_STARTED_AT_COOKIE

AUTH_COOKIE = "sb-test-auth-token"


class FakeAuth:
    def get_user(self, cookies):
        token = cookies.get(AUTH_COOKIE)
        if token in ("user-1", "user-2"):
            return {"id": token, "email": f"{token}@example.com"}
        return None


class APITestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_trainlytics.db"
        self.yaml_path = "test_settings.yaml"
        for path in (self.db_path, self.yaml_path):
            if os.path.exists(path):
                os.remove(path)
        self.api = TrainlyticsAPI(
            db_path=self.db_path, yaml_path=self.yaml_path, auth_provider=FakeAuth()
        )
        self.client = TestClient(self.api.app, follow_redirects=False)
        self.client.cookies.set(AUTH_COOKIE, "user-1")
        self.client.cookies.set(SESSION_STARTED_AT_COOKIE, str(int(datetime.datetime.now().timestamp() * 1000)))
        self.today = datetime.date.today()

    def tearDown(self) -> None:
        for path in (self.db_path, self.yaml_path):
            if os.path.exists(path):
                os.remove(path)

    def _day(self, offset: int) -> str:
        return (self.today - datetime.timedelta(days=offset)).isoformat()

    def test_bodyweight_workflow(self) -> None:
        response = self.client.post(
            "/bodyweight/logs", params={"weight": 80.0, "date": self._day(0)}
        )
        self.assertEqual(response.status_code, 200)
        first_id = response.json()["id"]
        self.client.post(
            "/bodyweight/logs", params={"weight": 180.0, "unit": "lb", "date": self._day(3)}
        )
        self.client.post("/bodyweight/logs", params={"weight": 83.0, "date": self._day(60)})

        response = self.client.get("/bodyweight", params={"range": "biweekly"})
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["summary"]["latest_log"]["id"], first_id)
        self.assertEqual(
            [p["log_date"] for p in body["chart"]["chart_data"]], [self._day(3), self._day(0)]
        )
        self.assertEqual(len(body["history"]["visible_logs"]), 3)
        self.assertFalse(body["history"]["has_active_history_filter"])

        response = self.client.get(
            "/bodyweight", params={"mode": "single", "date": self._day(3), "unit": "lb"}
        )
        history = response.json()["history"]
        self.assertEqual(len(history["visible_logs"]), 1)
        self.assertEqual(history["visible_logs"][0]["unit_input"], "lb")

        # same date overwrites the existing row
        response = self.client.post(
            "/bodyweight/logs", params={"weight": 79.5, "date": self._day(0)}
        )
        self.assertEqual(response.json()["id"], first_id)

        response = self.client.put(
            f"/bodyweight/logs/{first_id}", params={"weight": 79.0, "date": self._day(1)}
        )
        self.assertEqual(response.json(), {"status": "updated"})
        response = self.client.put(
            f"/bodyweight/logs/{first_id}", params={"weight": 79.0, "date": self._day(3)}
        )
        self.assertEqual(response.status_code, 400)

        response = self.client.delete(f"/bodyweight/logs/{first_id}")
        self.assertEqual(response.json(), {"status": "deleted"})
        response = self.client.delete(f"/bodyweight/logs/{first_id}")
        self.assertEqual(response.status_code, 404)

    def test_invalid_inputs(self) -> None:
        response = self.client.post("/bodyweight/logs", params={"weight": -1})
        self.assertEqual(response.status_code, 400)
        response = self.client.post(
            "/bodyweight/logs", params={"weight": 80, "date": "16/02/2026"}
        )
        self.assertEqual(response.status_code, 400)
        response = self.client.post("/bodyweight/logs", params={"weight": 80, "unit": "st"})
        self.assertEqual(response.status_code, 400)
        response = self.client.post("/calories/logs")
        self.assertEqual(response.status_code, 400)
        response = self.client.get("/calories", params={"range": "2w"})
        self.assertEqual(response.status_code, 400)
        response = self.client.get("/calories", params={"mode": "week"})
        self.assertEqual(response.status_code, 400)
        response = self.client.get("/bodyweight", params={"unit": "stone"})
        self.assertEqual(response.status_code, 400)
        response = self.client.get("/calories", params={"visible": -1})
        self.assertEqual(response.status_code, 400)
        response = self.client.put("/profile", params={"activity_level": "couch"})
        self.assertEqual(response.status_code, 400)

    def test_calories_and_burn_views(self) -> None:
        self.client.post(
            "/calories/logs",
            params={"pre_workout_kcal": 500, "post_workout_kcal": 1450, "date": self._day(1)},
        )
        self.client.post("/calories/logs", params={"pre_workout_kcal": 600, "date": self._day(0)})
        body = self.client.get("/calories", params={"range": "biweekly"}).json()
        self.assertEqual(body["summary"]["avg_total"], 1275)
        self.assertEqual(body["chart"]["y_max"], 2100)
        self.assertEqual([p["total"] for p in body["chart"]["chart_data"]], [1950, 600])

        self.client.post(
            "/calories/burn/logs",
            params={"estimated_kcal_spent": 350, "source": "watch", "date": self._day(0)},
        )
        body = self.client.get("/calories/burn").json()
        self.assertEqual(body["summary"]["avg_spent"], 350)
        self.assertEqual(body["chart"]["y_max"], 500)

    def test_logs_are_scoped_per_user(self) -> None:
        self.client.post("/bodyweight/logs", params={"weight": 80.0})
        other = TestClient(self.api.app, follow_redirects=False)
        other.cookies.set(AUTH_COOKIE, "user-2")
        body = other.get("/bodyweight").json()
        self.assertEqual(body["history"]["visible_logs"], [])
        entry_id = self.api.bodyweights.fetch_latest("user-1")["id"]
        self.assertEqual(other.delete(f"/bodyweight/logs/{entry_id}").status_code, 404)

    def test_profile_and_energy_snapshots(self) -> None:
        response = self.client.put(
            "/profile",
            params={
                "first_name": "Sam",
                "sex": "male",
                "birth_date": "1990-01-01",
                "height_cm": 180,
                "activity_level": "moderate",
            },
        )
        self.assertEqual(response.status_code, 200)
        day = self._day(0)
        self.client.post("/bodyweight/logs", params={"weight": 80.0, "date": day})
        self.client.post(
            "/calories/logs",
            params={"pre_workout_kcal": 900, "post_workout_kcal": 1600, "date": day},
        )
        self.client.post("/calories/burn/logs", params={"estimated_kcal_spent": 400, "date": day})

        maintenance = EnergyCalculator.maintenance_calories_from_profile(
            "male", 80.0, 180, "1990-01-01", "moderate"
        )
        snapshot = self.api.snapshots.fetch_range("user-1", day, day)[0]
        self.assertAlmostEqual(snapshot["maintenance_kcal_for_day"], maintenance)
        self.assertAlmostEqual(snapshot["total_burn_kcal"], maintenance + 400)
        self.assertAlmostEqual(snapshot["net_calories_kcal"], 2500 - maintenance - 400)
        self.assertAlmostEqual(snapshot["bmi"], 80 / 1.8 ** 2)

        body = self.client.get("/profile").json()
        self.assertEqual(body["bmi"], 24.7)
        self.assertEqual(body["bmi_category"], "normal")
        self.assertAlmostEqual(body["maintenance_kcal"], maintenance)
        self.assertAlmostEqual(body["profile"]["maintenance_kcal_current"], maintenance)

        body = self.client.get("/dashboard").json()
        self.assertEqual(body["view"]["welcome_title"], "Welcome Back, Sam 💪")
        self.assertEqual(body["view"]["latest_weight_text"], f"80 kg · {day}")
        self.assertEqual(body["view"]["latest_calories_text"], f"2500 kcal · {day}")
        self.assertEqual(body["view"]["energy_completeness_text"], "14%")
        self.assertEqual(body["data"]["email"], "user-1@example.com")
        self.assertEqual(len(body["data"]["energy_balance_series"]), 7)

        entry_id = self.api.burns.fetch_latest("user-1")["id"]
        self.client.delete(f"/calories/burn/logs/{entry_id}")
        snapshot = self.api.snapshots.fetch_range("user-1", day, day)[0]
        self.assertIsNone(snapshot["total_burn_kcal"])
        self.assertIsNone(snapshot["net_calories_kcal"])


    def _exercise_id(self, split: str, name: str) -> int:
        exercises = self.client.get("/log", params={"split": split}).json()["exercises"]
        return next(ex["id"] for ex in exercises if ex["name"] == name)

    def test_workout_logging(self) -> None:
        body = self.client.get("/log", params={"split": "push"}).json()
        self.assertEqual(body["exercises"][0]["name"], "Incline Bench Press")
        self.assertIsNone(body["last_session"])
        self.assertEqual(self.client.get("/log", params={"split": "arms"}).status_code, 400)

        bench = self._exercise_id("push", "Incline Bench Press")
        press = self._exercise_id("push", "Barbell Shoulder Press")
        sets = [
            {"exercise_id": press, "set_number": 1, "reps": "8", "weight": "95", "unit": "lb"},
            {"exercise_id": bench, "set_number": 2, "reps": 8, "weight": 100, "unit": "lb"},
            {"exercise_id": bench, "set_number": 1, "reps": 6, "weight": 50, "unit": "kg"},
        ]
        response = self.client.post(
            "/log/sessions", params={"split": "push", "date": self._day(2)}, json=sets
        )
        self.assertEqual(response.status_code, 200)
        saved = response.json()
        self.assertEqual(saved["set_count"], 3)
        session_id = saved["session_id"]

        summary = self.client.get(f"/log/sessions/{session_id}", params={"unit": "kg"}).json()
        self.assertEqual(summary["total_sets"], 3)
        first = summary["items"][0]
        self.assertEqual(first["exercise_name"], "Incline Bench Press")
        self.assertEqual(first["total_reps"], 14)
        self.assertEqual(first["max_weight_text"], "50.0 kg")
        self.assertEqual([d["set_number"] for d in first["set_details"]], [1, 2])

        # saving again replaces the session's sets
        response = self.client.post(
            "/log/sessions", params={"split": "push", "date": self._day(2)}, json=sets[:1]
        )
        self.assertEqual(response.json()["session_id"], session_id)
        self.assertEqual(len(self.api.workouts.fetch_sets("user-1", session_id)), 1)

        body = self.client.get("/log", params={"split": "push"}).json()
        self.assertEqual(body["last_session"], {"session_date": self._day(2), "days_ago": 2})
        view = self.client.get("/dashboard").json()["view"]
        self.assertEqual(view["latest_workout_text"], f"PUSH · {self._day(2)}")

        other = self.client.post(
            "/log/sessions", params={"split": "push", "date": self._day(0)}, json=sets[:1]
        ).json()["session_id"]
        response = self.client.put(f"/log/sessions/{session_id}", params={"date": self._day(0)})
        self.assertEqual(response.status_code, 400)
        tomorrow = (self.today + datetime.timedelta(days=1)).isoformat()
        response = self.client.put(f"/log/sessions/{session_id}", params={"date": tomorrow})
        self.assertEqual(response.json()["detail"], "Future workout dates are not allowed.")
        response = self.client.put(f"/log/sessions/{session_id}", params={"date": self._day(1)})
        self.assertEqual(response.json(), {"status": "updated"})

        response = self.client.delete(f"/log/sessions/{other}/sets/{press}/1")
        self.assertEqual(response.json(), {"status": "deleted"})
        response = self.client.delete(f"/log/sessions/{other}/sets/{press}/1")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(self.client.delete(f"/log/sessions/{session_id}").status_code, 200)
        self.assertEqual(self.client.get(f"/log/sessions/{session_id}").status_code, 404)

    def test_workout_validation(self) -> None:
        bench = self._exercise_id("push", "Incline Bench Press")
        plank = self._exercise_id("core", "Plank")
        response = self.client.post(
            "/log/sessions",
            params={"split": "push"},
            json=[{"exercise_id": bench, "set_number": 1, "reps": "", "weight": ""}],
        )
        self.assertEqual(response.status_code, 400)
        self.assertTrue(response.json()["detail"].startswith("Add at least one set"))
        response = self.client.post(
            "/log/sessions",
            params={"split": "push"},
            json=[{"exercise_id": bench, "set_number": 1, "reps": "8"}],
        )
        self.assertEqual(
            response.json()["detail"], "Enter both reps and weight for Incline Bench Press set 1"
        )
        # exercises from another split are not part of the push form
        response = self.client.post(
            "/log/sessions",
            params={"split": "push"},
            json=[{"exercise_id": plank, "set_number": 1, "seconds": 60}],
        )
        self.assertEqual(response.status_code, 400)
        response = self.client.post(
            "/log/sessions",
            params={"split": "core"},
            json=[{"exercise_id": plank, "set_number": 1, "seconds": 60}],
        )
        self.assertEqual(response.status_code, 200)


if __name__ == "__main__":
    unittest.main()
