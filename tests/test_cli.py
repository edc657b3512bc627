import io
import os
import sys
import unittest
from contextlib import redirect_stdout

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from cli import demo_data, main
from db import (
    BodyweightRepository,
    DailyEnergyRepository,
    ProfileRepository,
    WorkoutSessionRepository,
)


class CLITest(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_cli.db"
        if os.path.exists(self.db_path):
            os.remove(self.db_path)

    def tearDown(self) -> None:
        if os.path.exists(self.db_path):
            os.remove(self.db_path)

    def _run(self, *argv: str) -> str:
        out = io.StringIO()
        with redirect_stdout(out):
            main(list(argv))
        return out.getvalue().strip()

    def test_bmr(self) -> None:
        output = self._run("bmr", "--sex", "male", "--weight", "80", "--height", "180", "--age", "30")
        self.assertEqual(output, "BMR: 1780 kcal")

    def test_bmi(self) -> None:
        self.assertEqual(self._run("bmi", "--weight", "80", "--height", "180"), "BMI: 24.7 (normal)")
        self.assertEqual(
            self._run("bmi", "--weight", "80", "--height", "0"),
            "Weight and height must be positive",
        )

    def test_maintenance_invalid_birth_date(self) -> None:
        output = self._run(
            "maintenance", "--sex", "female", "--weight", "60", "--height", "165",
            "--birth-date", "2999-01-01",
        )
        self.assertEqual(output, "Invalid birth date")

    def test_convert(self) -> None:
        self.assertEqual(self._run("convert", "--weight", "100", "--unit", "kg"), "100.0 kg = 220.46 lb")

    def test_demo_data(self) -> None:
        out = io.StringIO()
        with redirect_stdout(out):
            demo_data(self.db_path, "demo")
            demo_data(self.db_path, "demo")
        self.assertIn("Demo data inserted", out.getvalue())
        self.assertIn("Database already contains logs", out.getvalue())
        self.assertEqual(len(BodyweightRepository(self.db_path).fetch_history("demo")), 14)
        profile = ProfileRepository(self.db_path).fetch("demo")
        self.assertIsNotNone(profile["maintenance_kcal_current"])
        snapshots = DailyEnergyRepository(self.db_path).fetch_range("demo", "0000-01-01", "9999-12-31")
        self.assertEqual(len(snapshots), 14)
        self.assertIsNotNone(snapshots[-1]["net_calories_kcal"])
        workouts = WorkoutSessionRepository(self.db_path)
        self.assertEqual(len(workouts.fetch_recent("demo")), 4)
        latest = workouts.fetch_latest("demo")
        self.assertEqual(latest["split"], "push")
        self.assertEqual(len(workouts.fetch_sets("demo", latest["id"])), 14)


if __name__ == "__main__":
    unittest.main()
