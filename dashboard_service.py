import datetime
from typing import Any, Dict, Optional

from db import (
    BodyweightRepository,
    BurnRepository,
    CaloriesRepository,
    DailyEnergyRepository,
    ProfileRepository,
    WorkoutSessionRepository,
)
from view_service import round_half_up, total_calories

ENERGY_WINDOW_DAYS = 7
LOADING_TEXT = "Loading..."
NO_LOGS_TEXT = "No logs yet"
NO_WORKOUTS_TEXT = "No workouts yet"
NOT_ENOUGH_DATA_TEXT = "Not enough data"


class DashboardService:
    """Aggregates the latest logs and 7-day energy figures for a user."""

    def __init__(
        self,
        bodyweights: BodyweightRepository,
        calories: CaloriesRepository,
        burns: BurnRepository,
        profiles: ProfileRepository,
        snapshots: DailyEnergyRepository,
        workouts: WorkoutSessionRepository,
    ) -> None:
        self.bodyweights = bodyweights
        self.calories = calories
        self.burns = burns
        self.profiles = profiles
        self.snapshots = snapshots
        self.workouts = workouts

    def load(
        self, user_id: str, email: str = "", today: Optional[datetime.date] = None
    ) -> Dict[str, Any]:
        today = today or datetime.date.today()
        start = today - datetime.timedelta(days=ENERGY_WINDOW_DAYS - 1)
        rows = {
            r["log_date"]: r
            for r in self.snapshots.fetch_range(user_id, start.isoformat(), today.isoformat())
        }

        series = []
        for offset in range(ENERGY_WINDOW_DAYS):
            day = (start + datetime.timedelta(days=offset)).isoformat()
            row = rows.get(day, {})
            series.append(
                {
                    "date": day,
                    "intake_kcal": row.get("calories_in_kcal"),
                    "spend_kcal": row.get("total_burn_kcal"),
                    "net_kcal": row.get("net_calories_kcal"),
                }
            )

        intakes = [p["intake_kcal"] for p in series if p["intake_kcal"] is not None]
        burns = [p["spend_kcal"] for p in series if p["spend_kcal"] is not None]
        nets = [p["net_kcal"] for p in series if p["net_kcal"] is not None]
        profile = self.profiles.fetch(user_id) or {}

        return {
            "email": email or "Athlete",
            "first_name": profile.get("first_name"),
            "latest_workout": self.workouts.fetch_latest(user_id),
            "latest_bodyweight": self.bodyweights.fetch_latest(user_id),
            "latest_calories": self.calories.fetch_latest(user_id),
            "latest_metabolic_burn": self.burns.fetch_latest(user_id),
            "avg_calories_7d": sum(intakes) / len(intakes) if intakes else None,
            "avg_burn_7d": sum(burns) / len(burns) if burns else None,
            "net_energy_7d": sum(nets) if nets else None,
            "energy_data_completeness_pct": len(nets) / ENERGY_WINDOW_DAYS * 100,
            "energy_balance_series": series,
        }


def _kcal(value: float) -> str:
    return f"{round_half_up(value)} kcal"


def _number(value: float) -> str:
    return f"{value:g}"


def dashboard_view_model(
    data: Optional[Dict[str, Any]], loading: bool = False, msg: Optional[str] = None
) -> Dict[str, Any]:
    """Return display strings for the dashboard cards."""
    first_name = ((data or {}).get("first_name") or "").strip()
    welcome = f"Welcome Back, {first_name} 💪" if first_name else "Welcome Back 💪"

    def text(key: str, fmt, empty: str = NO_LOGS_TEXT) -> str:
        if loading:
            return LOADING_TEXT
        value = (data or {}).get(key)
        return fmt(value) if value is not None else empty

    return {
        "welcome_title": welcome,
        "latest_workout_text": text(
            "latest_workout",
            lambda r: f"{r['split'].upper()} · {r['session_date']}",
            NO_WORKOUTS_TEXT,
        ),
        "latest_weight_text": text(
            "latest_bodyweight",
            lambda r: f"{_number(r['weight_input'])} {r['unit_input']} · {r['log_date']}",
        ),
        "latest_calories_text": text(
            "latest_calories",
            lambda r: f"{_number(total_calories(r['pre_workout_kcal'], r['post_workout_kcal']))} kcal · {r['log_date']}",
        ),
        "latest_burn_text": text(
            "latest_metabolic_burn",
            lambda r: f"{round_half_up(r['estimated_kcal_spent'])} kcal · {r['log_date']}",
        ),
        "avg_burn_7d_text": text("avg_burn_7d", _kcal, NOT_ENOUGH_DATA_TEXT),
        "net_energy_7d_text": text("net_energy_7d", _kcal, NOT_ENOUGH_DATA_TEXT),
        "energy_completeness_text": (
            LOADING_TEXT
            if loading
            else f"{round_half_up((data or {}).get('energy_data_completeness_pct', 0))}%"
        ),
        "error_message": msg,
    }
