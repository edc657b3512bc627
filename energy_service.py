import logging
import math
from typing import Any, Dict, Iterable, Optional

from algorithms import EnergyCalculator
from db import (
    BodyweightRepository,
    BurnRepository,
    CaloriesRepository,
    DailyEnergyRepository,
    ProfileRepository,
)

logger = logging.getLogger(__name__)

REFRESH_SOURCES = ("bodyweight", "calories_intake", "calories_burn", "profile")


def to_nullable_number(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        num = float(value)
    except (TypeError, ValueError):
        return None
    return num if math.isfinite(num) else None


def calories_in(row: Optional[Dict[str, Any]]) -> Optional[float]:
    """Return total intake of a calories row, ``None`` when nothing was logged."""
    if row is None:
        return None
    pre = to_nullable_number(row.get("pre_workout_kcal")) or 0.0
    post = to_nullable_number(row.get("post_workout_kcal")) or 0.0
    return pre + post


def maintenance_for_weight(
    profile: Optional[Dict[str, Any]], weight_kg: Optional[float]
) -> Optional[float]:
    """Return maintenance calories for ``weight_kg`` using profile inputs."""
    if not profile or weight_kg is None or weight_kg <= 0:
        return None
    sex = EnergyCalculator.normalize_sex(profile.get("sex"))
    level = EnergyCalculator.normalize_activity_level(profile.get("activity_level"))
    birth_date = profile.get("birth_date")
    height_cm = to_nullable_number(profile.get("height_cm"))
    if not sex or not level or not birth_date or height_cm is None or height_cm <= 0:
        return None
    return EnergyCalculator.maintenance_calories_from_profile(
        sex, weight_kg, height_cm, birth_date, level
    )


def build_snapshot(
    profile: Optional[Dict[str, Any]],
    weight_row: Optional[Dict[str, Any]],
    calories_row: Optional[Dict[str, Any]],
    burn_row: Optional[Dict[str, Any]],
) -> Dict[str, Optional[float]]:
    weight_kg = to_nullable_number(weight_row.get("weight_kg")) if weight_row else None
    active = to_nullable_number(burn_row.get("estimated_kcal_spent")) if burn_row else None
    intake = calories_in(calories_row)
    maintenance = maintenance_for_weight(profile, weight_kg)
    height_cm = to_nullable_number(profile.get("height_cm")) if profile else None
    bmi = EnergyCalculator.bmi(weight_kg, height_cm)
    total_burn = EnergyCalculator.total_burn_calories(maintenance, active)
    return {
        "weight_kg": weight_kg,
        "calories_in_kcal": intake,
        "active_calories_kcal": active,
        "bmi": bmi,
        "maintenance_kcal_for_day": maintenance,
        "total_burn_kcal": total_burn,
        "net_calories_kcal": EnergyCalculator.net_calories(intake, total_burn),
    }


class EnergyService:
    """Keeps daily energy snapshots in sync with the raw logs."""

    def __init__(
        self,
        bodyweights: BodyweightRepository,
        calories: CaloriesRepository,
        burns: BurnRepository,
        profiles: ProfileRepository,
        snapshots: DailyEnergyRepository,
    ) -> None:
        self.bodyweights = bodyweights
        self.calories = calories
        self.burns = burns
        self.profiles = profiles
        self.snapshots = snapshots

    def recompute_for_date(self, user_id: str, log_date: str) -> Dict[str, Optional[float]]:
        snapshot = build_snapshot(
            self.profiles.fetch(user_id),
            self.bodyweights.fetch_for_date(user_id, log_date),
            self.calories.fetch_for_date(user_id, log_date),
            self.burns.fetch_for_date(user_id, log_date),
        )
        if all(v is None for v in snapshot.values()):
            self.snapshots.delete(user_id, log_date)
        else:
            self.snapshots.upsert(user_id, log_date, snapshot)
        return snapshot

    def recompute_from_date_forward(self, user_id: str, from_date: str) -> list[str]:
        """Recompute every logged date on or after ``from_date``."""
        dates: set[str] = set()
        for repo in (self.bodyweights, self.calories, self.burns):
            dates.update(repo.fetch_dates_from(user_id, from_date))
        ordered = sorted(dates)
        for d in ordered:
            self.recompute_for_date(user_id, d)
        return ordered

    def recompute_maintenance_current(self, user_id: str) -> Optional[float]:
        latest = self.bodyweights.fetch_latest(user_id)
        weight_kg = to_nullable_number(latest.get("weight_kg")) if latest else None
        maintenance = maintenance_for_weight(self.profiles.fetch(user_id), weight_kg)
        self.profiles.set_maintenance_current(user_id, maintenance)
        return maintenance

    def refresh_after_write(
        self,
        source: str,
        user_id: str,
        touched_dates: Iterable[str] = (),
        refresh_maintenance_current: bool = False,
    ) -> None:
        if source not in REFRESH_SOURCES:
            raise ValueError(f"unknown refresh source: {source}")
        dates = sorted(set(touched_dates))
        if source == "profile":
            # profile inputs affect every stored day
            self.recompute_from_date_forward(user_id, "0000-01-01")
        else:
            for d in dates:
                self.recompute_for_date(user_id, d)
        if source in ("bodyweight", "profile") or refresh_maintenance_current:
            self.recompute_maintenance_current(user_id)
        logger.debug("refreshed energy metrics for %s after %s write", user_id, source)
