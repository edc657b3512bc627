import datetime
import math
from typing import Optional


class EnergyCalculator:
    """Energy and body composition formulas used for daily metrics."""

    ACTIVITY_MULTIPLIERS: dict[str, float] = {
        "sedentary": 1.2,
        "light": 1.375,
        "moderate": 1.55,
        "very_active": 1.725,
        "extra_active": 1.9,
    }
    SEXES = ("male", "female")
    MALE_ADJUSTMENT: int = 5
    FEMALE_ADJUSTMENT: int = -161

    @classmethod
    def bmr_mifflin_st_jeor(
        cls, sex: str, weight_kg: float, height_cm: float, age_years: int
    ) -> float:
        """Return basal metabolic rate in kcal using Mifflin-St Jeor."""
        adjustment = cls.MALE_ADJUSTMENT if sex == "male" else cls.FEMALE_ADJUSTMENT
        return 10 * weight_kg + 6.25 * height_cm - 5 * age_years + adjustment

    @classmethod
    def maintenance_calories(cls, bmr: float, activity_level: str) -> float:
        """Return maintenance calories (TDEE) for ``bmr`` and an activity level."""
        if activity_level not in cls.ACTIVITY_MULTIPLIERS:
            raise ValueError(f"unknown activity level: {activity_level}")
        return bmr * cls.ACTIVITY_MULTIPLIERS[activity_level]

    @staticmethod
    def age_years_from_birth_date(
        birth_date_iso: str, reference_date: Optional[datetime.date] = None
    ) -> Optional[int]:
        """Return whole years between ``birth_date_iso`` and the reference date.

        Invalid dates and birth dates after the reference date yield ``None``.
        """
        try:
            birth = datetime.date.fromisoformat(birth_date_iso)
        except (TypeError, ValueError):
            return None
        ref = reference_date or datetime.date.today()
        if isinstance(ref, datetime.datetime):
            ref = ref.date()
        years = ref.year - birth.year
        month_diff = ref.month - birth.month
        day_diff = ref.day - birth.day
        had_birthday = month_diff > 0 or (month_diff == 0 and day_diff >= 0)
        age = years if had_birthday else years - 1
        return age if age >= 0 else None

    @classmethod
    def maintenance_calories_from_profile(
        cls,
        sex: str,
        weight_kg: float,
        height_cm: float,
        birth_date_iso: str,
        activity_level: str,
        reference_date: Optional[datetime.date] = None,
    ) -> Optional[float]:
        age = cls.age_years_from_birth_date(birth_date_iso, reference_date)
        if age is None:
            return None
        bmr = cls.bmr_mifflin_st_jeor(sex, weight_kg, height_cm, age)
        return cls.maintenance_calories(bmr, activity_level)

    @staticmethod
    def bmi(weight_kg: Optional[float], height_cm: Optional[float]) -> Optional[float]:
        """Return body mass index or ``None`` for non-positive inputs."""
        if weight_kg is None or height_cm is None:
            return None
        if not weight_kg > 0 or not height_cm > 0:
            return None
        height_m = height_cm / 100
        return weight_kg / (height_m * height_m)

    @staticmethod
    def bmi_category(bmi: Optional[float]) -> Optional[str]:
        if bmi is None or not math.isfinite(bmi) or bmi <= 0:
            return None
        if bmi < 18.5:
            return "underweight"
        if bmi < 25:
            return "normal"
        if bmi < 30:
            return "overweight"
        return "obese"

    @staticmethod
    def total_burn_calories(
        maintenance_kcal: Optional[float], active_kcal: Optional[float]
    ) -> Optional[float]:
        """Return maintenance plus active calories when both are known."""
        if maintenance_kcal is None or active_kcal is None:
            return None
        if not math.isfinite(maintenance_kcal) or not math.isfinite(active_kcal):
            return None
        return maintenance_kcal + active_kcal

    @staticmethod
    def net_calories(
        calories_in_kcal: Optional[float], total_burn_kcal: Optional[float]
    ) -> Optional[float]:
        if calories_in_kcal is None or total_burn_kcal is None:
            return None
        if not math.isfinite(calories_in_kcal) or not math.isfinite(total_burn_kcal):
            return None
        return calories_in_kcal - total_burn_kcal

    @classmethod
    def normalize_sex(cls, value: Optional[str]) -> Optional[str]:
        return value if value in cls.SEXES else None

    @classmethod
    def normalize_activity_level(cls, value: Optional[str]) -> Optional[str]:
        return value if value in cls.ACTIVITY_MULTIPLIERS else None
