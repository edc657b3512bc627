import datetime
import math
from typing import Any, Dict, List, Optional

from algorithms import WeightConverter
from local_date import local_iso_date_days_ago, short_month_day_label

CHART_DAYS_BY_RANGE = {
    "biweekly": 14,
    "1m": 30,
    "3m": 90,
    "6m": 180,
    "1y": 365,
}
HISTORY_FILTER_MODES = ("single", "range")
HISTORY_CAP = 20
DEFAULT_VISIBLE_HISTORY = 5

Row = Dict[str, Any]


def _mean(values: List[float]) -> Optional[float]:
    if not values:
        return None
    return sum(values) / len(values)


def _number(value: Any) -> float:
    """Return ``value`` as float with missing values counted as zero."""
    if value is None:
        return 0.0
    try:
        num = float(value)
    except (TypeError, ValueError):
        return 0.0
    return num if math.isfinite(num) else 0.0


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _check_unit(display_unit: str) -> None:
    if display_unit not in WeightConverter.UNITS:
        raise ValueError(f"unknown weight unit: {display_unit}")


def range_start_iso(chart_range: str, today: Optional[datetime.date] = None) -> str:
    if chart_range not in CHART_DAYS_BY_RANGE:
        raise ValueError(f"unknown chart range: {chart_range}")
    return local_iso_date_days_ago(CHART_DAYS_BY_RANGE[chart_range] - 1, today)


def calories_axis_max(values: List[float]) -> int:
    """Round the highest value plus headroom up to the next hundred."""
    max_value = max(values) if values else 0
    return max(100, math.ceil((max_value + 100) / 100) * 100)


def _chart_points(logs: List[Row], builder) -> List[Row]:
    ordered = sorted(logs, key=lambda log: log["log_date"])
    points = []
    for log in ordered:
        point = {"log_date": log["log_date"], "label": short_month_day_label(log["log_date"])}
        point.update(builder(log))
        points.append(point)
    return points


def history_view(
    logs: List[Row],
    filter_mode: str,
    single_date: str = "",
    start_date: str = "",
    end_date: str = "",
    visible_count: int = DEFAULT_VISIBLE_HISTORY,
) -> Row:
    """Filter ``logs`` for the history list and report paging flags.

    ``single`` mode keeps exact date matches; ``range`` mode keeps rows
    between the inclusive bounds, where an empty bound is open.
    """
    if filter_mode not in HISTORY_FILTER_MODES:
        raise ValueError(f"unknown filter mode: {filter_mode}")
    if visible_count < 0:
        raise ValueError("visible count must not be negative")
    start_date = start_date or ""
    end_date = end_date or ""

    def keep(log: Row) -> bool:
        if filter_mode == "single":
            return log["log_date"] == single_date
        after_min = log["log_date"] >= start_date if start_date else True
        before_max = log["log_date"] <= end_date if end_date else True
        return after_min and before_max

    capped = [log for log in logs if keep(log)][:HISTORY_CAP]
    return {
        "visible_logs": capped[:visible_count],
        "has_more_history": len(capped) > visible_count,
        "can_show_less_history": visible_count > DEFAULT_VISIBLE_HISTORY,
        "has_active_history_filter": filter_mode == "single"
        or len(start_date) > 0
        or len(end_date) > 0,
    }


# Bodyweight


def bodyweight_summary(logs: List[Row], display_unit: str = "kg") -> Row:
    _check_unit(display_unit)
    latest = logs[0] if logs else None
    avg_kg = _mean([_number(log.get("weight_kg")) for log in logs])
    avg_display = None
    if avg_kg is not None:
        avg_display = WeightConverter.format_weight_from_kg(
            float(f"{avg_kg:.1f}"), display_unit
        )
    return {"latest_log": latest, "avg_display": avg_display}


def bodyweight_chart_view(
    logs: List[Row],
    display_unit: str,
    chart_range: str,
    today: Optional[datetime.date] = None,
) -> Row:
    _check_unit(display_unit)
    start = range_start_iso(chart_range, today)
    points = _chart_points(
        logs,
        lambda log: {
            "weight": float(
                WeightConverter.format_weight_from_kg(
                    _number(log.get("weight_kg")), display_unit
                )
            )
        },
    )
    chart_data = [p for p in points if p["log_date"] >= start]
    weights = [p["weight"] for p in chart_data]
    min_weight = min(weights) if weights else 0
    max_weight = max(weights) if weights else 0

    kg = display_unit == "kg"
    min_span = 1 if kg else 2
    padding = 0.6 if kg else 1.2
    tick_step = 1 if kg else 2
    span = max(max_weight - min_weight, min_span)
    extra = min_span / 2 if span == min_span else 0
    y_min = math.floor((min_weight - padding - extra) / tick_step) * tick_step
    y_max = math.ceil((max_weight + padding + extra) / tick_step) * tick_step
    tick_count = int((y_max - y_min) // tick_step) + 1
    y_ticks = [round(y_min + i * tick_step, 1) for i in range(tick_count)]

    return {
        "chart_data": chart_data,
        "y_min": y_min,
        "y_max": y_max,
        "y_ticks": y_ticks,
        "range_start_iso": start,
    }


# Calorie intake


def total_calories(pre_kcal: Optional[float], post_kcal: Optional[float]) -> float:
    return _number(pre_kcal) + _number(post_kcal)


def calories_summary(logs: List[Row]) -> Row:
    latest = logs[0] if logs else None
    totals = [total_calories(log.get("pre_workout_kcal"), log.get("post_workout_kcal")) for log in logs]
    return {
        "latest_log": latest,
        "avg_total": _mean(totals),
        "avg_pre": _mean([_number(log.get("pre_workout_kcal")) for log in logs]),
        "avg_post": _mean([_number(log.get("post_workout_kcal")) for log in logs]),
    }


def calories_chart_view(
    logs: List[Row], chart_range: str, today: Optional[datetime.date] = None
) -> Row:
    start = range_start_iso(chart_range, today)

    def build(log: Row) -> Row:
        pre = _number(log.get("pre_workout_kcal"))
        post = _number(log.get("post_workout_kcal"))
        return {"pre_workout": pre, "post_workout": post, "total": pre + post}

    chart_data = [p for p in _chart_points(logs, build) if p["log_date"] >= start]
    return {
        "chart_data": chart_data,
        "y_max": calories_axis_max([p["total"] for p in chart_data]),
        "range_start_iso": start,
    }


# Calorie burn


def burn_summary(logs: List[Row]) -> Row:
    latest = logs[0] if logs else None
    avg_spent = _mean([_number(log.get("estimated_kcal_spent")) for log in logs])
    return {"latest_log": latest, "avg_spent": avg_spent}


def burn_chart_view(
    logs: List[Row], chart_range: str, today: Optional[datetime.date] = None
) -> Row:
    start = range_start_iso(chart_range, today)
    points = _chart_points(
        logs, lambda log: {"spent": _number(log.get("estimated_kcal_spent"))}
    )
    chart_data = [p for p in points if p["log_date"] >= start]
    return {
        "chart_data": chart_data,
        "y_max": calories_axis_max([p["spent"] for p in chart_data]),
        "range_start_iso": start,
    }


def format_calories(value: Optional[float]) -> str:
    if value is None or not math.isfinite(value):
        return "-"
    return str(round_half_up(value))
