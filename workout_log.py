import datetime
import math
import re
from typing import Any, Dict, Iterable, List, Optional

from algorithms import WeightConverter

SPLITS = ("push", "pull", "legs", "core")
METRIC_TYPES = ("WEIGHTED_REPS", "DURATION")
SETS_PER_EXERCISE = 2

LOG_MESSAGES = {
    "future_date_not_allowed": "Future workout dates are not allowed.",
    "saved_workout": "Saved workout progress ✅",
    "empty_workout_save": (
        "Add at least one set before saving workout. "
        "Include reps + weight (or duration)."
    ),
}

# name, split, muscle group, metric type, sort order
DEFAULT_EXERCISES = (
    ("Incline Bench Press", "push", "chest", "WEIGHTED_REPS", 1),
    ("Triceps Push Down", "push", "triceps", "WEIGHTED_REPS", 2),
    ("Barbell Shoulder Press", "push", "shoulders", "WEIGHTED_REPS", 3),
    ("Cable Lateral Raises", "push", "shoulders", "WEIGHTED_REPS", 4),
    ("Pec Fly", "push", "chest", "WEIGHTED_REPS", 5),
    ("Overhead Tricep Press", "push", "triceps", "WEIGHTED_REPS", 6),
    ("Converging Shoulder Press", "push", "shoulders", "WEIGHTED_REPS", 7),
    ("Bendover Barbell Row", "pull", "back", "WEIGHTED_REPS", 1),
    ("Diverging Low Row", "pull", "back", "WEIGHTED_REPS", 2),
    ("Pull Up", "pull", "back", "WEIGHTED_REPS", 3),
    ("Hammer Curl", "pull", "biceps", "WEIGHTED_REPS", 4),
    ("Upper Back Row", "pull", "back", "WEIGHTED_REPS", 5),
    ("Preacher Curl", "pull", "biceps", "WEIGHTED_REPS", 6),
    ("Lat Pull", "pull", "back", "WEIGHTED_REPS", 7),
    ("Squat", "legs", "quads", "WEIGHTED_REPS", 1),
    ("Romanian Deadlift", "legs", "hamstrings", "WEIGHTED_REPS", 2),
    ("Leg Extension", "legs", "quads", "WEIGHTED_REPS", 3),
    ("Leg Curl", "legs", "hamstrings", "WEIGHTED_REPS", 4),
    ("Prone Leg Curl", "legs", "hamstrings", "WEIGHTED_REPS", 5),
    ("Calf Raise", "legs", "calves", "WEIGHTED_REPS", 6),
    ("Plank", "core", "core", "DURATION", 1),
    ("Weighted Leg Raises", "core", "core", "WEIGHTED_REPS", 2),
    ("Dumbbell Crunches", "core", "core", "WEIGHTED_REPS", 3),
)

# Summary ordering per split; labels match by substring, misspellings included.
SUMMARY_ORDER = {
    "push": (
        "incline",
        "tricep push",
        "triceps push",
        "tricep pull",
        "triceps pull",
        "barbell shoulder",
        "cable lateral raise",
        "pec fly",
        "peck fly",
        "overhead tricep",
        "overhead tricept",
        "converging",
    ),
    "pull": (
        "bendover barbell row",
        "bent over barbell row",
        "diverging low row",
        "pull up",
        "pull-up",
        "hammer",
        "upper back row",
        "preacher",
        "pracher",
        "preacher curl",
        "lat pull down",
        "lat pulldown",
    ),
    "legs": (
        "squat",
        "romainian",
        "romanian",
        "leg extension",
        "leg curl",
        "calves",
        "prone leg curl",
    ),
}

Row = Dict[str, Any]


def check_split(split: str) -> str:
    if split not in SPLITS:
        raise ValueError(f"unknown split: {split}")
    return split


def check_session_date(session_date: str, today: Optional[datetime.date] = None) -> str:
    """Return ``session_date`` normalised; future dates are rejected."""
    try:
        day = datetime.date.fromisoformat(session_date)
    except (TypeError, ValueError):
        raise ValueError("date must be in YYYY-MM-DD format")
    if day > (today or datetime.date.today()):
        raise ValueError(LOG_MESSAGES["future_date_not_allowed"])
    return day.isoformat()


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def _number(text: str) -> Optional[float]:
    try:
        num = float(text)
    except ValueError:
        return None
    return num if math.isfinite(num) else None


def build_set_rows(exercises: Iterable[Row], entries: Iterable[Row]) -> List[Row]:
    """Validate form entries and return rows ready to store.

    Each entry names an ``exercise_id`` and ``set_number`` and carries
    ``reps``/``weight``/``unit`` for weighted exercises or ``seconds`` for
    timed ones. Blank entries are skipped; a weighted entry needs both reps
    and weight.
    """
    by_id = {int(ex["id"]): ex for ex in exercises}
    rows: Dict[tuple, Row] = {}
    for entry in entries:
        try:
            exercise_id = int(entry["exercise_id"])
            set_number = int(entry["set_number"])
        except (KeyError, TypeError, ValueError):
            raise ValueError("each set needs exercise_id and set_number")
        exercise = by_id.get(exercise_id)
        if exercise is None:
            raise ValueError(f"unknown exercise: {exercise_id}")
        if not 1 <= set_number <= SETS_PER_EXERCISE:
            raise ValueError(f"set_number must be between 1 and {SETS_PER_EXERCISE}")
        label = f"{exercise['name']} set {set_number}"

        if exercise["metric_type"] == "WEIGHTED_REPS":
            reps_text = _text(entry.get("reps"))
            weight_text = _text(entry.get("weight"))
            if bool(reps_text) != bool(weight_text):
                raise ValueError(f"Enter both reps and weight for {label}")
            if not reps_text:
                continue
            reps = _number(reps_text)
            if reps is None or reps < 0:
                raise ValueError(f"Invalid reps for {label}")
            weight = _number(weight_text)
            if weight is None or weight < 0:
                raise ValueError(f"Invalid weight for {label}")
            unit = entry.get("unit") or "lb"
            row = {
                "reps": int(reps),
                "weight_input": weight,
                "unit_input": unit,
                "weight_kg": WeightConverter.to_kg(weight, unit),
                "duration_seconds": None,
            }
        else:
            seconds_text = _text(entry.get("seconds"))
            if not seconds_text:
                continue
            seconds = _number(seconds_text)
            if seconds is None or seconds < 0:
                raise ValueError(f"Invalid seconds for {label}")
            row = {
                "reps": None,
                "weight_input": None,
                "unit_input": None,
                "weight_kg": None,
                "duration_seconds": int(seconds),
            }
        row.update(exercise_id=exercise_id, set_number=set_number)
        rows[(exercise_id, set_number)] = row
    if not rows:
        raise ValueError(LOG_MESSAGES["empty_workout_save"])
    return list(rows.values())


def _normalize_label(value: str) -> str:
    value = re.sub(r"[^a-z0-9\s]", " ", value.lower())
    return re.sub(r"\s+", " ", value).strip()


def _order_index(exercise_name: str, labels: Iterable[str]) -> float:
    name = _normalize_label(exercise_name)
    for index, label in enumerate(labels):
        if _normalize_label(label) in name:
            return index
    return math.inf


def sort_session_summary_items(items: List[Row], split: str) -> List[Row]:
    """Order summary items by the split's lift order, then by name."""
    labels = SUMMARY_ORDER.get(split, ())
    ordered = []
    for item in items:
        item = dict(item)
        item["set_details"] = sorted(item["set_details"], key=lambda d: d["set_number"])
        ordered.append(item)
    return sorted(
        ordered,
        key=lambda item: (_order_index(item["exercise_name"], labels), item["exercise_name"]),
    )


def build_session_summary_items(
    set_rows: Iterable[Row], exercise_rows: Iterable[Row], split: str
) -> List[Row]:
    """Group a session's sets per exercise with totals and max weight in kg."""
    meta = {row["id"]: row for row in exercise_rows}
    summary: Dict[Any, Row] = {}
    for row in set_rows:
        exercise = meta.get(row["exercise_id"])
        if exercise is not None:
            metric_type = exercise["metric_type"]
        else:
            metric_type = "DURATION" if row.get("duration_seconds") is not None else "WEIGHTED_REPS"
        item = summary.get(row["exercise_id"])
        if item is None:
            item = summary[row["exercise_id"]] = {
                "exercise_id": row["exercise_id"],
                "exercise_name": exercise["name"] if exercise else "Unknown exercise",
                "metric_type": metric_type,
                "sets": 0,
                "total_reps": 0,
                "max_weight": None,
                "unit": "kg" if metric_type == "WEIGHTED_REPS" else None,
                "total_duration_seconds": 0,
                "set_details": [],
            }
        item["sets"] += 1
        item["set_details"].append(
            {
                "set_number": row["set_number"],
                "reps": row.get("reps"),
                "weight_input": row.get("weight_input"),
                "unit_input": row.get("unit_input"),
                "duration_seconds": row.get("duration_seconds"),
            }
        )
        if metric_type == "WEIGHTED_REPS":
            item["total_reps"] += row.get("reps") or 0
            if row.get("weight_input") is not None:
                weight_kg = WeightConverter.to_kg(row["weight_input"], row.get("unit_input") or "lb")
                if item["max_weight"] is None or weight_kg > item["max_weight"]:
                    item["max_weight"] = weight_kg
        else:
            item["total_duration_seconds"] += row.get("duration_seconds") or 0
    return sort_session_summary_items(list(summary.values()), split)


def days_ago(session_date: str, today: Optional[datetime.date] = None) -> int:
    today = today or datetime.date.today()
    return max(0, (today - datetime.date.fromisoformat(session_date)).days)


def format_summary_weight(
    weight_value: Optional[float], input_unit: Optional[str], summary_unit: str
) -> str:
    if weight_value is None:
        return "-"
    kg = WeightConverter.to_kg(weight_value, input_unit or "lb")
    value = kg if summary_unit == "kg" else kg * WeightConverter.LB_PER_KG
    return f"{value:.1f} {summary_unit}"


def format_alternate_weight(weight_text: str, unit: str) -> Optional[str]:
    """Show a typed weight in the other unit, e.g. ``"100"`` lb as ``"45.4 kg"``."""
    value = _number(_text(weight_text)) if _text(weight_text) else None
    if value is None or value < 0:
        return None
    if unit == "lb":
        return f"{value / WeightConverter.LB_PER_KG:.1f} kg"
    return f"{value * WeightConverter.LB_PER_KG:.1f} lb"


def session_summary_view(
    session: Row, set_rows: List[Row], exercise_rows: List[Row], summary_unit: str = "lb"
) -> Row:
    if summary_unit not in WeightConverter.UNITS:
        raise ValueError(f"unknown weight unit: {summary_unit}")
    items = build_session_summary_items(set_rows, exercise_rows, session["split"])
    for item in items:
        item["max_weight_text"] = (
            format_summary_weight(item["max_weight"], "kg", summary_unit)
            if item["metric_type"] == "WEIGHTED_REPS"
            else "-"
        )
    return {
        "session": session,
        "items": items,
        "total_sets": sum(item["sets"] for item in items),
    }
