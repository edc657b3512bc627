import datetime
import logging
from typing import Dict, List, Optional

from fastapi import Body, FastAPI, HTTPException, Request

from algorithms import EnergyCalculator
from auth_client import get_auth_client
from config import APP_VERSION, load_settings
from dashboard_service import DashboardService, dashboard_view_model
from db import (
    BodyweightRepository,
    BurnRepository,
    CaloriesRepository,
    DailyEnergyRepository,
    ExerciseRepository,
    ProfileRepository,
    WorkoutSessionRepository,
)
from energy_service import EnergyService, maintenance_for_weight, to_nullable_number
from rate_limit import RateLimitBuckets, RateLimiter
from routes import friendly_login_reason, get_safe_protected_next_route
from session_gate import AuthProvider, SessionGate
from view_service import (
    bodyweight_chart_view,
    bodyweight_summary,
    burn_chart_view,
    burn_summary,
    calories_chart_view,
    calories_summary,
    history_view,
)
from workout_log import (
    LOG_MESSAGES,
    build_set_rows,
    check_session_date,
    check_split,
    days_ago,
    session_summary_view,
)

logger = logging.getLogger(__name__)


def _current_user_id(request: Request) -> str:
    user = getattr(request.state, "user", None)
    if not user:
        raise HTTPException(status_code=401, detail="authentication required")
    return str(user["id"])


def _log_date(date: Optional[str]) -> str:
    if date is None:
        return datetime.date.today().isoformat()
    try:
        return datetime.date.fromisoformat(date).isoformat()
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail="date must be in YYYY-MM-DD format",
        )


class TrainlyticsAPI:
    """Provides the session-gated REST endpoints for logs and energy views."""

    def __init__(
        self,
        db_path: str = "trainlytics.db",
        yaml_path: str = "settings.yaml",
        *,
        auth_provider: Optional[AuthProvider] = None,
        clock=None,
    ) -> None:
        self.db_path = db_path
        self.settings = load_settings(yaml_path)
        self.bodyweights = BodyweightRepository(db_path)
        self.calories = CaloriesRepository(db_path)
        self.burns = BurnRepository(db_path)
        self.profiles = ProfileRepository(db_path)
        self.snapshots = DailyEnergyRepository(db_path)
        self.exercises = ExerciseRepository(db_path)
        self.workouts = WorkoutSessionRepository(db_path)
        self.energy = EnergyService(
            self.bodyweights, self.calories, self.burns, self.profiles, self.snapshots
        )
        self.dashboard = DashboardService(
            self.bodyweights,
            self.calories,
            self.burns,
            self.profiles,
            self.snapshots,
            self.workouts,
        )
        if auth_provider is None and self.settings.supabase_url and self.settings.supabase_anon_key:
            auth_provider = get_auth_client(
                self.settings.supabase_url, self.settings.supabase_anon_key
            )
        gate_options = {
            "max_age_ms": self.settings.session_max_age_ms,
            "cookie_max_age_days": self.settings.session_cookie_max_age_days,
            "secure_cookies": self.settings.secure_cookies,
        }
        if clock is not None:
            gate_options["clock"] = clock
        self.gate = SessionGate(auth_provider, **gate_options)
        self.rate_limits = RateLimitBuckets()

        self.app = FastAPI(
            title="Trainlytics API",
            description="REST API for bodyweight, calorie and energy tracking",
            version=APP_VERSION,
        )
        self.app.middleware("http")(self.gate)
        if self.settings.rate_limit is not None:
            limiter = RateLimiter(
                self.rate_limits,
                limit=self.settings.rate_limit,
                window_ms=self.settings.rate_window_ms,
            )
            self.app.middleware("http")(limiter)
        self._setup_routes()

    def _refresh(self, source: str, user_id: str, *dates: str) -> None:
        self.energy.refresh_after_write(source, user_id, dates)

    def _setup_routes(self) -> None:
        default_visible = self.settings.default_history_count

        @self.app.get("/health")
        def health():
            return {"status": "ok", "version": APP_VERSION}

        def public_page(page: str, next: Optional[str], reason: Optional[str]):
            return {
                "page": page,
                "message": friendly_login_reason(reason),
                "next": get_safe_protected_next_route(next),
            }

        @self.app.get("/login")
        def login_page(next: str = None, reason: str = None):
            return public_page("login", next, reason)

        @self.app.get("/signup")
        def signup_page(next: str = None, reason: str = None):
            return public_page("signup", next, reason)

        @self.app.get("/forgot-password")
        def forgot_password_page(next: str = None, reason: str = None):
            return public_page("forgot-password", next, reason)

        @self.app.get("/dashboard")
        def dashboard_page(request: Request):
            user_id = _current_user_id(request)
            email = request.state.user.get("email") or ""
            data = self.dashboard.load(user_id, email)
            return {"data": data, "view": dashboard_view_model(data)}

        @self.app.get("/bodyweight")
        def bodyweight_page(
            request: Request,
            range: str = "1m",
            unit: str = "kg",
            mode: str = "range",
            date: str = "",
            start: str = "",
            end: str = "",
            visible: int = default_visible,
        ):
            user_id = _current_user_id(request)
            logs = self.bodyweights.fetch_history(user_id)
            try:
                return {
                    "summary": bodyweight_summary(logs, unit),
                    "chart": bodyweight_chart_view(logs, unit, range),
                    "history": history_view(logs, mode, date, start, end, visible),
                }
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @self.app.post("/bodyweight/logs")
        def log_bodyweight(request: Request, weight: float, unit: str = "kg", date: str = None):
            user_id = _current_user_id(request)
            log_date = _log_date(date)
            try:
                entry_id = self.bodyweights.log(user_id, log_date, weight, unit)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            self._refresh("bodyweight", user_id, log_date)
            return {"id": entry_id}

        @self.app.put("/bodyweight/logs/{entry_id}")
        def update_bodyweight(
            request: Request, entry_id: int, weight: float, date: str, unit: str = "kg"
        ):
            user_id = _current_user_id(request)
            try:
                previous = self.bodyweights.update(user_id, entry_id, date, weight, unit)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            self._refresh("bodyweight", user_id, previous, date)
            return {"status": "updated"}

        @self.app.delete("/bodyweight/logs/{entry_id}")
        def delete_bodyweight(request: Request, entry_id: int):
            user_id = _current_user_id(request)
            try:
                previous = self.bodyweights.delete(user_id, entry_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            self._refresh("bodyweight", user_id, previous)
            return {"status": "deleted"}

        @self.app.get("/calories")
        def calories_page(
            request: Request,
            range: str = "1m",
            mode: str = "range",
            date: str = "",
            start: str = "",
            end: str = "",
            visible: int = default_visible,
        ):
            user_id = _current_user_id(request)
            logs = self.calories.fetch_history(user_id)
            try:
                return {
                    "summary": calories_summary(logs),
                    "chart": calories_chart_view(logs, range),
                    "history": history_view(logs, mode, date, start, end, visible),
                }
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @self.app.post("/calories/logs")
        def log_calories(
            request: Request,
            pre_workout_kcal: float = None,
            post_workout_kcal: float = None,
            date: str = None,
        ):
            user_id = _current_user_id(request)
            log_date = _log_date(date)
            try:
                entry_id = self.calories.log(
                    user_id, log_date, pre_workout_kcal, post_workout_kcal
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            self._refresh("calories_intake", user_id, log_date)
            return {"id": entry_id}

        @self.app.put("/calories/logs/{entry_id}")
        def update_calories(
            request: Request,
            entry_id: int,
            date: str,
            pre_workout_kcal: float = None,
            post_workout_kcal: float = None,
        ):
            user_id = _current_user_id(request)
            try:
                previous = self.calories.update(
                    user_id, entry_id, date, pre_workout_kcal, post_workout_kcal
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            self._refresh("calories_intake", user_id, previous, date)
            return {"status": "updated"}

        @self.app.delete("/calories/logs/{entry_id}")
        def delete_calories(request: Request, entry_id: int):
            user_id = _current_user_id(request)
            try:
                previous = self.calories.delete(user_id, entry_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            self._refresh("calories_intake", user_id, previous)
            return {"status": "deleted"}

        @self.app.get("/calories/burn")
        def burn_page(
            request: Request,
            range: str = "1m",
            mode: str = "range",
            date: str = "",
            start: str = "",
            end: str = "",
            visible: int = default_visible,
        ):
            user_id = _current_user_id(request)
            logs = self.burns.fetch_history(user_id)
            try:
                return {
                    "summary": burn_summary(logs),
                    "chart": burn_chart_view(logs, range),
                    "history": history_view(logs, mode, date, start, end, visible),
                }
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @self.app.post("/calories/burn/logs")
        def log_burn(
            request: Request, estimated_kcal_spent: float, source: str = None, date: str = None
        ):
            user_id = _current_user_id(request)
            log_date = _log_date(date)
            try:
                entry_id = self.burns.log(user_id, log_date, estimated_kcal_spent, source)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            self._refresh("calories_burn", user_id, log_date)
            return {"id": entry_id}

        @self.app.put("/calories/burn/logs/{entry_id}")
        def update_burn(
            request: Request,
            entry_id: int,
            estimated_kcal_spent: float,
            date: str,
            source: str = None,
        ):
            user_id = _current_user_id(request)
            try:
                previous = self.burns.update(
                    user_id, entry_id, date, estimated_kcal_spent, source
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            self._refresh("calories_burn", user_id, previous, date)
            return {"status": "updated"}

        @self.app.delete("/calories/burn/logs/{entry_id}")
        def delete_burn(request: Request, entry_id: int):
            user_id = _current_user_id(request)
            try:
                previous = self.burns.delete(user_id, entry_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            self._refresh("calories_burn", user_id, previous)
            return {"status": "deleted"}

        @self.app.get("/log")
        def log_page(request: Request, split: str = "push"):
            user_id = _current_user_id(request)
            try:
                check_split(split)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            self.exercises.ensure_defaults(user_id)
            last = self.workouts.fetch_recent(user_id, 1, split)
            return {
                "split": split,
                "exercises": self.exercises.fetch_for_split(user_id, split),
                "recent_sessions": self.workouts.fetch_recent(user_id),
                "last_session": (
                    {
                        "session_date": last[0]["session_date"],
                        "days_ago": days_ago(last[0]["session_date"]),
                    }
                    if last
                    else None
                ),
            }

        @self.app.post("/log/sessions")
        def save_workout(
            request: Request,
            split: str,
            date: str = None,
            sets: List[Dict] = Body(...),
        ):
            user_id = _current_user_id(request)
            session_date = _log_date(date)
            try:
                check_split(split)
                check_session_date(session_date)
                self.exercises.ensure_defaults(user_id)
                rows = build_set_rows(self.exercises.fetch_for_split(user_id, split), sets)
                saved = self.workouts.save_sets(user_id, session_date, split, rows)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            logger.debug("saved %s sets for %s on %s", saved["set_count"], split, session_date)
            return {**saved, "message": LOG_MESSAGES["saved_workout"]}

        @self.app.get("/log/sessions/{session_id}")
        def workout_summary(request: Request, session_id: int, unit: str = "lb"):
            user_id = _current_user_id(request)
            try:
                session = self.workouts.fetch(user_id, session_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            try:
                return session_summary_view(
                    session,
                    self.workouts.fetch_sets(user_id, session_id),
                    self.exercises.fetch_for_user(user_id),
                    unit,
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @self.app.put("/log/sessions/{session_id}")
        def move_workout(request: Request, session_id: int, date: str):
            user_id = _current_user_id(request)
            try:
                self.workouts.fetch(user_id, session_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            try:
                self.workouts.update_date(user_id, session_id, check_session_date(date))
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return {"status": "updated"}

        @self.app.delete("/log/sessions/{session_id}")
        def delete_workout(request: Request, session_id: int):
            user_id = _current_user_id(request)
            try:
                self.workouts.delete(user_id, session_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            return {"status": "deleted"}

        @self.app.delete("/log/sessions/{session_id}/sets/{exercise_id}/{set_number}")
        def delete_workout_set(
            request: Request, session_id: int, exercise_id: int, set_number: int
        ):
            user_id = _current_user_id(request)
            try:
                self.workouts.delete_set(user_id, session_id, exercise_id, set_number)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            return {"status": "deleted"}

        @self.app.get("/profile")
        def profile_page(request: Request):
            user_id = _current_user_id(request)
            profile = self.profiles.fetch(user_id) or {"user_id": user_id}
            latest = self.bodyweights.fetch_latest(user_id)
            weight_kg = to_nullable_number(latest["weight_kg"]) if latest else None
            bmi = EnergyCalculator.bmi(weight_kg, to_nullable_number(profile.get("height_cm")))
            return {
                "profile": profile,
                "bmi": round(bmi, 1) if bmi is not None else None,
                "bmi_category": EnergyCalculator.bmi_category(bmi),
                "maintenance_kcal": maintenance_for_weight(profile, weight_kg),
            }

        @self.app.put("/profile")
        def update_profile(
            request: Request,
            first_name: str = None,
            sex: str = None,
            birth_date: str = None,
            height_cm: float = None,
            activity_level: str = None,
        ):
            user_id = _current_user_id(request)
            fields = {
                "first_name": first_name,
                "sex": sex,
                "birth_date": birth_date,
                "height_cm": height_cm,
                "activity_level": activity_level,
            }
            try:
                self.profiles.save(
                    user_id, **{k: v for k, v in fields.items() if v is not None}
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            self._refresh("profile", user_id)
            return {"status": "updated"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(TrainlyticsAPI().app)
