import sqlite3
import datetime
import math
from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Tuple

from algorithms import EnergyCalculator, WeightConverter
from workout_log import DEFAULT_EXERCISES, check_split


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "profiles": (
            """CREATE TABLE profiles (
                    user_id TEXT PRIMARY KEY,
                    first_name TEXT,
                    sex TEXT,
                    birth_date TEXT,
                    height_cm REAL,
                    activity_level TEXT,
                    maintenance_kcal_current REAL,
                    maintenance_updated_at TEXT
                );""",
            [
                "user_id",
                "first_name",
                "sex",
                "birth_date",
                "height_cm",
                "activity_level",
                "maintenance_kcal_current",
                "maintenance_updated_at",
            ],
        ),
        "bodyweight_logs": (
            """CREATE TABLE bodyweight_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    log_date TEXT NOT NULL,
                    weight_input REAL NOT NULL,
                    unit_input TEXT NOT NULL DEFAULT 'kg',
                    weight_kg REAL NOT NULL,
                    UNIQUE (user_id, log_date)
                );""",
            ["id", "user_id", "log_date", "weight_input", "unit_input", "weight_kg"],
        ),
        "calories_logs": (
            """CREATE TABLE calories_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    log_date TEXT NOT NULL,
                    pre_workout_kcal REAL,
                    post_workout_kcal REAL,
                    UNIQUE (user_id, log_date)
                );""",
            ["id", "user_id", "log_date", "pre_workout_kcal", "post_workout_kcal"],
        ),
        "metabolic_activity_logs": (
            """CREATE TABLE metabolic_activity_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    log_date TEXT NOT NULL,
                    estimated_kcal_spent REAL NOT NULL,
                    source TEXT,
                    UNIQUE (user_id, log_date)
                );""",
            ["id", "user_id", "log_date", "estimated_kcal_spent", "source"],
        ),
        "daily_energy_metrics": (
            """CREATE TABLE daily_energy_metrics (
                    user_id TEXT NOT NULL,
                    log_date TEXT NOT NULL,
                    weight_kg REAL,
                    calories_in_kcal REAL,
                    active_calories_kcal REAL,
                    bmi REAL,
                    maintenance_kcal_for_day REAL,
                    total_burn_kcal REAL,
                    net_calories_kcal REAL,
                    PRIMARY KEY (user_id, log_date)
                );""",
            [
                "user_id",
                "log_date",
                "weight_kg",
                "calories_in_kcal",
                "active_calories_kcal",
                "bmi",
                "maintenance_kcal_for_day",
                "total_burn_kcal",
                "net_calories_kcal",
            ],
        ),
        "exercises": (
            """CREATE TABLE exercises (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    split TEXT NOT NULL,
                    muscle_group TEXT,
                    metric_type TEXT NOT NULL DEFAULT 'WEIGHTED_REPS',
                    sort_order INTEGER NOT NULL DEFAULT 0,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    UNIQUE (user_id, name)
                );""",
            [
                "id",
                "user_id",
                "name",
                "split",
                "muscle_group",
                "metric_type",
                "sort_order",
                "is_active",
            ],
        ),
        "workout_sessions": (
            """CREATE TABLE workout_sessions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    session_date TEXT NOT NULL,
                    split TEXT NOT NULL,
                    UNIQUE (user_id, session_date, split)
                );""",
            ["id", "user_id", "session_date", "split"],
        ),
        "workout_sets": (
            """CREATE TABLE workout_sets (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    session_id INTEGER NOT NULL,
                    exercise_id INTEGER NOT NULL,
                    set_number INTEGER NOT NULL,
                    reps INTEGER,
                    weight_input REAL,
                    unit_input TEXT,
                    weight_kg REAL,
                    duration_seconds INTEGER,
                    updated_at TEXT,
                    UNIQUE (session_id, exercise_id, set_number)
                );""",
            [
                "id",
                "user_id",
                "session_id",
                "exercise_id",
                "set_number",
                "reps",
                "weight_input",
                "unit_input",
                "weight_kg",
                "duration_seconds",
                "updated_at",
            ],
        ),
    }

    def __init__(self, db_path: str = "trainlytics.db") -> None:
        self._db_path = db_path
        self._ensure_schema()

    @contextmanager
    def _connection(self):
        connection = sqlite3.connect(self._db_path)
        connection.row_factory = sqlite3.Row
        try:
            yield connection
            connection.commit()
        finally:
            connection.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                self._ensure_table(conn, table, sql, columns)

    def _ensure_table(
        self, conn: sqlite3.Connection, table: str, sql: str, columns: List[str]
    ) -> None:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
        )
        if cur.fetchone() is None:
            conn.execute(sql)
            return

        cur = conn.execute(f"PRAGMA table_info({table});")
        existing_cols = [row[1] for row in cur.fetchall()]
        if existing_cols == columns:
            return

        conn.execute(f"ALTER TABLE {table} RENAME TO {table}_old;")
        conn.execute(sql)
        common = [c for c in existing_cols if c in columns]
        if common:
            cols = ", ".join(common)
            conn.execute(
                f"INSERT INTO {table} ({cols}) SELECT {cols} FROM {table}_old;"
            )
        conn.execute(f"DROP TABLE {table}_old;")


class BaseRepository(Database):
    """Base repository providing helper methods."""

    def execute(self, query: str, params: Tuple = ()) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.lastrowid

    def fetch_all(self, query: str, params: Tuple = ()) -> List[Dict[str, Any]]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return [dict(row) for row in cursor.fetchall()]


def _validate_date(value: str) -> str:
    try:
        return datetime.date.fromisoformat(value).isoformat()
    except (TypeError, ValueError):
        raise ValueError("date must be in YYYY-MM-DD format")


def _optional_kcal(value: Optional[float], name: str) -> Optional[float]:
    if value is None:
        return None
    if not math.isfinite(value) or value < 0:
        raise ValueError(f"{name} must be a non-negative number")
    return float(value)


class DailyLogRepository(BaseRepository):
    """Shared queries for per-user tables holding one row per date."""

    table = ""
    columns: Tuple[str, ...] = ()

    def fetch_history(
        self,
        user_id: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Return rows for ``user_id`` ordered newest first."""
        cols = ", ".join(("id", "log_date") + self.columns)
        query = f"SELECT {cols} FROM {self.table} WHERE user_id = ?"
        params: list[str] = [user_id]
        if start_date:
            query += " AND log_date >= ?"
            params.append(start_date)
        if end_date:
            query += " AND log_date <= ?"
            params.append(end_date)
        query += " ORDER BY log_date DESC;"
        return self.fetch_all(query, tuple(params))

    def fetch_for_date(self, user_id: str, log_date: str) -> Optional[Dict[str, Any]]:
        rows = self.fetch_history(user_id, log_date, log_date)
        return rows[0] if rows else None

    def fetch_latest(self, user_id: str) -> Optional[Dict[str, Any]]:
        cols = ", ".join(("id", "log_date") + self.columns)
        rows = self.fetch_all(
            f"SELECT {cols} FROM {self.table} WHERE user_id = ? ORDER BY log_date DESC LIMIT 1;",
            (user_id,),
        )
        return rows[0] if rows else None

    def fetch_dates_from(self, user_id: str, from_date: str) -> List[str]:
        rows = self.fetch_all(
            f"SELECT log_date FROM {self.table} WHERE user_id = ? AND log_date >= ?;",
            (user_id, from_date),
        )
        return [r["log_date"] for r in rows]

    def _get(self, user_id: str, entry_id: int) -> Dict[str, Any]:
        rows = self.fetch_all(
            f"SELECT id, log_date FROM {self.table} WHERE id = ? AND user_id = ?;",
            (entry_id, user_id),
        )
        if not rows:
            raise ValueError("log not found")
        return rows[0]

    def _upsert(self, user_id: str, log_date: str, values: Dict[str, Any]) -> int:
        log_date = _validate_date(log_date)
        names = list(values)
        cols = ", ".join(["user_id", "log_date"] + names)
        marks = ", ".join("?" for _ in range(len(names) + 2))
        updates = ", ".join(f"{n} = excluded.{n}" for n in names)
        self.execute(
            f"INSERT INTO {self.table} ({cols}) VALUES ({marks}) "
            f"ON CONFLICT(user_id, log_date) DO UPDATE SET {updates};",
            (user_id, log_date, *values.values()),
        )
        row = self.fetch_all(
            f"SELECT id FROM {self.table} WHERE user_id = ? AND log_date = ?;",
            (user_id, log_date),
        )
        return int(row[0]["id"])

    def _update(
        self, user_id: str, entry_id: int, log_date: str, values: Dict[str, Any]
    ) -> str:
        """Update a row and return its previous log date."""
        existing = self._get(user_id, entry_id)
        log_date = _validate_date(log_date)
        clash = self.fetch_all(
            f"SELECT id FROM {self.table} WHERE user_id = ? AND log_date = ? AND id != ?;",
            (user_id, log_date, entry_id),
        )
        if clash:
            raise ValueError("a log already exists for that date")
        sets = ", ".join(f"{n} = ?" for n in ["log_date", *values])
        self.execute(
            f"UPDATE {self.table} SET {sets} WHERE id = ?;",
            (log_date, *values.values(), entry_id),
        )
        return existing["log_date"]

    def delete(self, user_id: str, entry_id: int) -> str:
        """Delete a row and return its log date."""
        existing = self._get(user_id, entry_id)
        self.execute(f"DELETE FROM {self.table} WHERE id = ?;", (entry_id,))
        return existing["log_date"]


class BodyweightRepository(DailyLogRepository):
    """Repository for bodyweight logs."""

    table = "bodyweight_logs"
    columns = ("weight_input", "unit_input", "weight_kg")

    @staticmethod
    def _values(weight: float, unit: str) -> Dict[str, Any]:
        if not math.isfinite(weight) or weight <= 0:
            raise ValueError("weight must be positive")
        return {
            "weight_input": weight,
            "unit_input": unit,
            "weight_kg": WeightConverter.to_kg(weight, unit),
        }

    def log(self, user_id: str, log_date: str, weight: float, unit: str = "kg") -> int:
        return self._upsert(user_id, log_date, self._values(weight, unit))

    def update(
        self, user_id: str, entry_id: int, log_date: str, weight: float, unit: str = "kg"
    ) -> str:
        return self._update(user_id, entry_id, log_date, self._values(weight, unit))


class CaloriesRepository(DailyLogRepository):
    """Repository for calorie intake logs."""

    table = "calories_logs"
    columns = ("pre_workout_kcal", "post_workout_kcal")

    @staticmethod
    def _values(pre_kcal: Optional[float], post_kcal: Optional[float]) -> Dict[str, Any]:
        if pre_kcal is None and post_kcal is None:
            raise ValueError("at least one value required")
        return {
            "pre_workout_kcal": _optional_kcal(pre_kcal, "pre_workout_kcal"),
            "post_workout_kcal": _optional_kcal(post_kcal, "post_workout_kcal"),
        }

    def log(
        self,
        user_id: str,
        log_date: str,
        pre_kcal: Optional[float] = None,
        post_kcal: Optional[float] = None,
    ) -> int:
        return self._upsert(user_id, log_date, self._values(pre_kcal, post_kcal))

    def update(
        self,
        user_id: str,
        entry_id: int,
        log_date: str,
        pre_kcal: Optional[float] = None,
        post_kcal: Optional[float] = None,
    ) -> str:
        return self._update(user_id, entry_id, log_date, self._values(pre_kcal, post_kcal))


class BurnRepository(DailyLogRepository):
    """Repository for estimated active calorie burn logs."""

    table = "metabolic_activity_logs"
    columns = ("estimated_kcal_spent", "source")

    @staticmethod
    def _values(kcal: float, source: Optional[str]) -> Dict[str, Any]:
        if kcal is None:
            raise ValueError("estimated_kcal_spent required")
        return {
            "estimated_kcal_spent": _optional_kcal(kcal, "estimated_kcal_spent"),
            "source": source or None,
        }

    def log(self, user_id: str, log_date: str, kcal: float, source: Optional[str] = None) -> int:
        return self._upsert(user_id, log_date, self._values(kcal, source))

    def update(
        self,
        user_id: str,
        entry_id: int,
        log_date: str,
        kcal: float,
        source: Optional[str] = None,
    ) -> str:
        return self._update(user_id, entry_id, log_date, self._values(kcal, source))


class ProfileRepository(BaseRepository):
    """Repository for per-user profile settings used by energy formulas."""

    FIELDS = ("first_name", "sex", "birth_date", "height_cm", "activity_level")

    def fetch(self, user_id: str) -> Optional[Dict[str, Any]]:
        rows = self.fetch_all("SELECT * FROM profiles WHERE user_id = ?;", (user_id,))
        return rows[0] if rows else None

    def save(self, user_id: str, **fields: Any) -> None:
        unknown = set(fields) - set(self.FIELDS)
        if unknown:
            raise ValueError(f"unknown profile fields: {', '.join(sorted(unknown))}")
        if fields.get("sex") is not None and EnergyCalculator.normalize_sex(fields["sex"]) is None:
            raise ValueError("sex must be 'male' or 'female'")
        level = fields.get("activity_level")
        if level is not None and EnergyCalculator.normalize_activity_level(level) is None:
            raise ValueError("invalid activity level")
        if fields.get("birth_date") is not None:
            fields["birth_date"] = _validate_date(fields["birth_date"])
        height = fields.get("height_cm")
        if height is not None and (not math.isfinite(height) or height <= 0):
            raise ValueError("height_cm must be positive")
        self.execute(
            "INSERT INTO profiles (user_id) VALUES (?) ON CONFLICT(user_id) DO NOTHING;",
            (user_id,),
        )
        if fields:
            sets = ", ".join(f"{k} = ?" for k in fields)
            self.execute(
                f"UPDATE profiles SET {sets} WHERE user_id = ?;",
                (*fields.values(), user_id),
            )

    def set_maintenance_current(self, user_id: str, kcal: Optional[float]) -> None:
        self.execute(
            "INSERT INTO profiles (user_id, maintenance_kcal_current, maintenance_updated_at) "
            "VALUES (?, ?, ?) ON CONFLICT(user_id) DO UPDATE SET "
            "maintenance_kcal_current = excluded.maintenance_kcal_current, "
            "maintenance_updated_at = excluded.maintenance_updated_at;",
            (user_id, kcal, datetime.datetime.now(datetime.timezone.utc).isoformat()),
        )


class DailyEnergyRepository(BaseRepository):
    """Repository for per-day derived energy snapshots."""

    SNAPSHOT_FIELDS = (
        "weight_kg",
        "calories_in_kcal",
        "active_calories_kcal",
        "bmi",
        "maintenance_kcal_for_day",
        "total_burn_kcal",
        "net_calories_kcal",
    )

    def upsert(self, user_id: str, log_date: str, snapshot: Dict[str, Any]) -> None:
        values = [snapshot.get(f) for f in self.SNAPSHOT_FIELDS]
        cols = ", ".join(self.SNAPSHOT_FIELDS)
        marks = ", ".join("?" for _ in self.SNAPSHOT_FIELDS)
        updates = ", ".join(f"{f} = excluded.{f}" for f in self.SNAPSHOT_FIELDS)
        self.execute(
            f"INSERT INTO daily_energy_metrics (user_id, log_date, {cols}) "
            f"VALUES (?, ?, {marks}) ON CONFLICT(user_id, log_date) DO UPDATE SET {updates};",
            (user_id, log_date, *values),
        )

    def delete(self, user_id: str, log_date: str) -> None:
        self.execute(
            "DELETE FROM daily_energy_metrics WHERE user_id = ? AND log_date = ?;",
            (user_id, log_date),
        )

    def fetch_range(
        self, user_id: str, start_date: str, end_date: str
    ) -> List[Dict[str, Any]]:
        return self.fetch_all(
            "SELECT * FROM daily_energy_metrics WHERE user_id = ? "
            "AND log_date >= ? AND log_date <= ? ORDER BY log_date;",
            (user_id, start_date, end_date),
        )


class ExerciseRepository(BaseRepository):
    """Repository for each user's exercise catalog."""

    def ensure_defaults(self, user_id: str) -> None:
        """Upsert the default catalog for ``user_id``.

        Users without any logged sets get their other exercises deactivated so
        the log page shows only the defaults.
        """
        with self._connection() as conn:
            conn.executemany(
                "INSERT INTO exercises (user_id, name, split, muscle_group, metric_type, sort_order, is_active) "
                "VALUES (?, ?, ?, ?, ?, ?, 1) ON CONFLICT(user_id, name) DO UPDATE SET "
                "split = excluded.split, muscle_group = excluded.muscle_group, "
                "metric_type = excluded.metric_type, sort_order = excluded.sort_order, "
                "is_active = 1;",
                [(user_id, *seed) for seed in DEFAULT_EXERCISES],
            )
            history = conn.execute(
                "SELECT 1 FROM workout_sets WHERE user_id = ? LIMIT 1;", (user_id,)
            ).fetchone()
            if history is None:
                names = [seed[0] for seed in DEFAULT_EXERCISES]
                marks = ", ".join("?" for _ in names)
                conn.execute(
                    f"UPDATE exercises SET is_active = 0 WHERE user_id = ? AND name NOT IN ({marks});",
                    (user_id, *names),
                )

    def fetch_for_split(self, user_id: str, split: str) -> List[Dict[str, Any]]:
        return self.fetch_all(
            "SELECT id, name, split, muscle_group, metric_type, sort_order FROM exercises "
            "WHERE user_id = ? AND split = ? AND is_active = 1 ORDER BY sort_order, name;",
            (user_id, check_split(split)),
        )

    def fetch_for_user(self, user_id: str) -> List[Dict[str, Any]]:
        return self.fetch_all(
            "SELECT id, name, split, muscle_group, metric_type, sort_order, is_active "
            "FROM exercises WHERE user_id = ? ORDER BY split, sort_order, name;",
            (user_id,),
        )


class WorkoutSessionRepository(BaseRepository):
    """Repository for workout sessions and their sets."""

    SET_COLUMNS = (
        "exercise_id",
        "set_number",
        "reps",
        "weight_input",
        "unit_input",
        "weight_kg",
        "duration_seconds",
    )

    def save_sets(
        self, user_id: str, session_date: str, split: str, rows: List[Dict[str, Any]]
    ) -> Dict[str, int]:
        """Store a session's sets in one transaction.

        The session for ``(session_date, split)`` is created on demand. Sets
        present in ``rows`` are inserted or updated and every other set of the
        session is removed.
        """
        session_date = _validate_date(session_date)
        check_split(split)
        if not rows:
            raise ValueError("at least one set required")
        now = datetime.datetime.now(datetime.timezone.utc).isoformat()
        cols = ", ".join(("user_id", "session_id", *self.SET_COLUMNS, "updated_at"))
        marks = ", ".join("?" for _ in range(len(self.SET_COLUMNS) + 3))
        updates = ", ".join(
            f"{c} = excluded.{c}" for c in (*self.SET_COLUMNS[2:], "updated_at")
        )
        with self._connection() as conn:
            conn.execute(
                "INSERT INTO workout_sessions (user_id, session_date, split) VALUES (?, ?, ?) "
                "ON CONFLICT(user_id, session_date, split) DO NOTHING;",
                (user_id, session_date, split),
            )
            session_id = conn.execute(
                "SELECT id FROM workout_sessions WHERE user_id = ? AND session_date = ? AND split = ?;",
                (user_id, session_date, split),
            ).fetchone()["id"]
            keep = set()
            for row in rows:
                conn.execute(
                    f"INSERT INTO workout_sets ({cols}) VALUES ({marks}) "
                    f"ON CONFLICT(session_id, exercise_id, set_number) DO UPDATE SET {updates};",
                    (user_id, session_id, *(row.get(c) for c in self.SET_COLUMNS), now),
                )
                keep.add((row["exercise_id"], row["set_number"]))
            existing = conn.execute(
                "SELECT id, exercise_id, set_number FROM workout_sets WHERE session_id = ?;",
                (session_id,),
            ).fetchall()
            stale = [(r["id"],) for r in existing if (r["exercise_id"], r["set_number"]) not in keep]
            conn.executemany("DELETE FROM workout_sets WHERE id = ?;", stale)
        return {"session_id": int(session_id), "set_count": len(keep)}

    def fetch(self, user_id: str, session_id: int) -> Dict[str, Any]:
        rows = self.fetch_all(
            "SELECT id, session_date, split FROM workout_sessions WHERE id = ? AND user_id = ?;",
            (session_id, user_id),
        )
        if not rows:
            raise ValueError("session not found")
        return rows[0]

    def fetch_recent(
        self, user_id: str, limit: int = 10, split: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        query = "SELECT id, session_date, split FROM workout_sessions WHERE user_id = ?"
        params: list[Any] = [user_id]
        if split is not None:
            query += " AND split = ?"
            params.append(check_split(split))
        query += " ORDER BY session_date DESC, id DESC LIMIT ?;"
        params.append(limit)
        return self.fetch_all(query, tuple(params))

    def fetch_latest(self, user_id: str) -> Optional[Dict[str, Any]]:
        rows = self.fetch_recent(user_id, 1)
        return rows[0] if rows else None

    def fetch_sets(self, user_id: str, session_id: int) -> List[Dict[str, Any]]:
        cols = ", ".join(("id", *self.SET_COLUMNS, "updated_at"))
        return self.fetch_all(
            f"SELECT {cols} FROM workout_sets WHERE session_id = ? AND user_id = ? "
            "ORDER BY exercise_id, set_number;",
            (session_id, user_id),
        )

    def has_date_collision(
        self, user_id: str, split: str, new_date: str, exclude_session_id: int
    ) -> bool:
        rows = self.fetch_all(
            "SELECT id FROM workout_sessions WHERE user_id = ? AND split = ? "
            "AND session_date = ? AND id != ? LIMIT 1;",
            (user_id, split, new_date, exclude_session_id),
        )
        return bool(rows)

    def update_date(self, user_id: str, session_id: int, new_date: str) -> None:
        session = self.fetch(user_id, session_id)
        new_date = _validate_date(new_date)
        if self.has_date_collision(user_id, session["split"], new_date, session_id):
            raise ValueError(
                f"A {session['split']} session already exists on {new_date}"
            )
        self.execute(
            "UPDATE workout_sessions SET session_date = ? WHERE id = ?;",
            (new_date, session_id),
        )

    def delete(self, user_id: str, session_id: int) -> None:
        self.fetch(user_id, session_id)
        with self._connection() as conn:
            conn.execute("DELETE FROM workout_sets WHERE session_id = ?;", (session_id,))
            conn.execute("DELETE FROM workout_sessions WHERE id = ?;", (session_id,))

    def delete_set(
        self, user_id: str, session_id: int, exercise_id: int, set_number: int
    ) -> None:
        self.fetch(user_id, session_id)
        rows = self.fetch_all(
            "SELECT id FROM workout_sets WHERE session_id = ? AND exercise_id = ? AND set_number = ?;",
            (session_id, exercise_id, set_number),
        )
        if not rows:
            raise ValueError("set not found")
        self.execute("DELETE FROM workout_sets WHERE id = ?;", (rows[0]["id"],))
