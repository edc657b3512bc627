import requests
from typing import Any, Callable, Dict, List, Optional, Tuple

from request_version import RequestVersionTracker


class GuardedLoader:
    """Runs fetches under a request version and drops superseded results."""

    def __init__(self, tracker: Optional[RequestVersionTracker] = None) -> None:
        self.tracker = tracker or RequestVersionTracker()

    def load(self, fetch: Callable[[], Any]) -> Tuple[bool, Any]:
        """Return ``(True, result)`` or ``(False, None)`` if the fetch went stale."""
        version = self.tracker.next()
        result = fetch()
        if self.tracker.is_stale(version):
            return False, None
        return True, result

    def invalidate(self) -> None:
        self.tracker.invalidate()


class TrainlyticsClient:
    """Simple REST client for the tracking API."""

    def __init__(self, base_url: str = "http://localhost:8000", session=None) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.views = GuardedLoader()

    def _get(self, path: str, **params: Any):
        resp = self.session.get(f"{self.base_url}{path}", params=params)
        resp.raise_for_status()
        return resp.json()

    def log_bodyweight(self, weight: float, unit: str = "kg", date: Optional[str] = None) -> int:
        params = {"weight": weight, "unit": unit}
        if date:
            params["date"] = date
        resp = self.session.post(f"{self.base_url}/bodyweight/logs", params=params)
        resp.raise_for_status()
        return resp.json()["id"]

    def log_calories(
        self,
        pre_workout_kcal: Optional[float] = None,
        post_workout_kcal: Optional[float] = None,
        date: Optional[str] = None,
    ) -> int:
        params = {
            k: v
            for k, v in {
                "pre_workout_kcal": pre_workout_kcal,
                "post_workout_kcal": post_workout_kcal,
                "date": date,
            }.items()
            if v is not None
        }
        resp = self.session.post(f"{self.base_url}/calories/logs", params=params)
        resp.raise_for_status()
        return resp.json()["id"]

    def log_workout(
        self, split: str, sets: List[Dict[str, Any]], date: Optional[str] = None
    ) -> int:
        params = {"split": split}
        if date:
            params["date"] = date
        resp = self.session.post(f"{self.base_url}/log/sessions", params=params, json=sets)
        resp.raise_for_status()
        return resp.json()["session_id"]

    def bodyweight_view(self, **params: Any) -> Optional[dict]:
        """Fetch the bodyweight page view; ``None`` if a newer fetch superseded it."""
        fresh, data = self.views.load(lambda: self._get("/bodyweight", **params))
        return data if fresh else None

    def calories_view(self, **params: Any) -> Optional[dict]:
        fresh, data = self.views.load(lambda: self._get("/calories", **params))
        return data if fresh else None

    def workout_summary(self, session_id: int, unit: str = "lb") -> Optional[dict]:
        fresh, data = self.views.load(
            lambda: self._get(f"/log/sessions/{session_id}", unit=unit)
        )
        return data if fresh else None

    def dashboard(self) -> Optional[dict]:
        fresh, data = self.views.load(lambda: self._get("/dashboard"))
        return data if fresh else None

    def sign_out(self) -> None:
        self.views.invalidate()
        self.session.cookies.clear()
