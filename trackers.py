"""
Tracker data modules.

Every tracker page of the app follows the same pattern: fetch the signed-in
user's rows (optionally for one day or one type), derive a few aggregates
from them, and re-fetch after every write. ``Tracker`` implements that
pattern once; the module-level instances at the bottom configure it for
each domain.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
import logging

from fastapi import HTTPException
from sqlalchemy import Date, DateTime
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import CompileError, SQLAlchemyError
from sqlalchemy.orm import Session

from config import Config
import models
from models import User, utcnow

logger = logging.getLogger(__name__)


@dataclass
class Snapshot:
    items: list
    summary: dict
    logs: list = field(default_factory=list)


def today() -> date:
    return datetime.now(timezone.utc).date()


def day_bounds(day: date):
    start = datetime(day.year, day.month, day.day, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


def as_utc(value):
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    return value


def commit(db: Session):
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise


UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def upsert_insert(db: Session):
    """Return the dialect's ``insert`` construct supporting ON CONFLICT."""
    dialect = db.get_bind().dialect.name
    if dialect not in UPSERT_INSERTS:
        raise CompileError(f"Atomic upsert is not supported on {dialect}")
    return UPSERT_INSERTS[dialect]


class Tracker:
    """
    Generic user-scoped CRUD over one table.

    model         -- mapped class, must have a ``user_id`` column
    order_by      -- column name the list is sorted on, newest first
    day_column    -- date/datetime column used by the ``day`` filter
    day_scoped    -- when True the list always covers a single day (today by default)
    filter_fields -- column names accepted as equality filters by ``list``
    base_filters  -- equality filters applied to every list
    limit         -- maximum number of rows fetched
    required      -- fields that must be present and non-empty on create
    prepare       -- ``prepare(fields, row)`` hook normalising written fields
    summarize     -- ``summarize(items)`` returning the aggregate dict
    """

    def __init__(self, name, model, order_by, *, day_column=None, day_scoped=False,
                 filter_fields=(), base_filters=None, limit=None, required=(),
                 prepare=None, summarize=None):
        self.name = name
        self.model = model
        self.order_by = order_by
        self.day_column = day_column
        self.day_scoped = day_scoped
        self.filter_fields = tuple(filter_fields)
        self.base_filters = dict(base_filters or {})
        self.limit = limit
        self.required = tuple(required)
        self.prepare = prepare
        self.summarize = summarize

    # -- READ --

    def query(self, db: Session, user: User, day: date | None = None, **filters):
        q = db.query(self.model).filter(self.model.user_id == user.id)
        for key, value in self.base_filters.items():
            q = q.filter(getattr(self.model, key) == value)

        for key, value in filters.items():
            if key not in self.filter_fields:
                raise ValueError(f"{self.name} cannot be filtered on {key!r}")
            if value is not None:
                q = q.filter(getattr(self.model, key) == value)

        if self.day_column is not None:
            if day is None and self.day_scoped:
                day = today()
            if day is not None:
                q = self._filter_day(q, day)

        q = q.order_by(getattr(self.model, self.order_by).desc(), self.model.id.desc())
        if self.limit:
            q = q.limit(self.limit)
        return q

    def _filter_day(self, q, day: date):
        column = getattr(self.model, self.day_column)
        if isinstance(column.type, DateTime):
            start, end = day_bounds(day)
            return q.filter(column >= start, column < end)
        if isinstance(column.type, Date):
            return q.filter(column == day)
        raise TypeError(f"{self.day_column} is not a date column")

    def list(self, db: Session, user: User, day: date | None = None, **filters) -> Snapshot:
        items = self.query(db, user, day=day, **filters).all()
        summary = self.summarize(items) if self.summarize else {"count": len(items)}
        return Snapshot(items=items, summary=summary)

    def get(self, db: Session, user: User, record_id: int):
        row = (
            db.query(self.model)
            .filter(self.model.id == record_id, self.model.user_id == user.id)
            .first()
        )
        if row is None:
            raise HTTPException(status_code=404, detail=f"{self.label} not found")
        return row

    @property
    def label(self) -> str:
        return self.model.__name__

    # -- WRITE --

    def validate(self, fields: dict):
        for key in self.required:
            value = fields.get(key)
            if value is None or (isinstance(value, str) and not value.strip()):
                raise HTTPException(status_code=422, detail=f"{key} is required")

    def create(self, db: Session, user: User, fields: dict, day: date | None = None, **filters) -> Snapshot:
        fields = {key: as_utc(value) for key, value in fields.items()}
        self.validate(fields)
        if self.prepare:
            fields = self.prepare(fields, None)

        row = self.model(**fields, user_id=user.id)
        db.add(row)
        commit(db)
        logger.info("%s: user %s created row %s", self.name, user.id, row.id)
        return self.list(db, user, day=day, **filters)

    def update(self, db: Session, user: User, record_id: int, fields: dict, day: date | None = None, **filters) -> Snapshot:
        row = self.get(db, user, record_id)
        fields = {key: as_utc(value) for key, value in fields.items()}
        if self.prepare:
            fields = self.prepare(fields, row)

        for key, value in fields.items():
            if key in ("id", "user_id"):
                continue
            if hasattr(row, key):
                setattr(row, key, value)

        commit(db)
        logger.info("%s: user %s updated row %s", self.name, user.id, record_id)
        return self.list(db, user, day=day, **filters)

    def delete(self, db: Session, user: User, record_id: int, day: date | None = None, **filters) -> Snapshot:
        row = self.get(db, user, record_id)
        db.delete(row)
        commit(db)
        logger.info("%s: user %s deleted row %s", self.name, user.id, record_id)
        return self.list(db, user, day=day, **filters)


class HabitTracker(Tracker):
    """Habits are deactivated instead of deleted so their logs survive."""

    def list(self, db: Session, user: User, day: date | None = None, **filters) -> Snapshot:
        habits = self.query(db, user, **filters).all()
        active_ids = {habit.id for habit in habits}
        logs = [
            log for log in self.logs_for_day(db, user, day or today())
            if log.habit_id in active_ids
        ]
        return Snapshot(items=habits, logs=logs, summary=habit_summary(habits, logs))

    def logs_for_day(self, db: Session, user: User, day: date):
        return (
            db.query(models.HabitLog)
            .filter(models.HabitLog.user_id == user.id, models.HabitLog.logged_date == day)
            .order_by(models.HabitLog.habit_id)
            .all()
        )

    def history(self, db: Session, user: User, habit_id: int):
        """All logs of a habit, including habits that were deactivated."""
        habit = (
            db.query(models.Habit)
            .filter(models.Habit.id == habit_id, models.Habit.user_id == user.id)
            .first()
        )
        if habit is None:
            raise HTTPException(status_code=404, detail="Habit not found")
        return (
            db.query(models.HabitLog)
            .filter(models.HabitLog.habit_id == habit_id, models.HabitLog.user_id == user.id)
            .order_by(models.HabitLog.logged_date.desc())
            .all()
        )

    def delete(self, db: Session, user: User, record_id: int, day: date | None = None, **filters) -> Snapshot:
        return self.deactivate(db, user, record_id, day=day)

    def deactivate(self, db: Session, user: User, habit_id: int, day: date | None = None) -> Snapshot:
        habit = self.get(db, user, habit_id)
        habit.is_active = False
        commit(db)
        logger.info("%s: user %s deactivated habit %s", self.name, user.id, habit_id)
        return self.list(db, user, day=day)

    def toggle(self, db: Session, user: User, habit_id: int, day: date | None = None) -> Snapshot:
        """
        Mark the habit done for the day, or flip the day's existing log.

        Runs as one INSERT ... ON CONFLICT DO UPDATE on the
        (user, habit, day) key so two concurrent toggles never create a
        second log for the same day.
        """
        if not self.get(db, user, habit_id).is_active:
            raise HTTPException(status_code=404, detail="Habit not found")
        day = day or today()

        table = models.HabitLog.__table__
        insert = upsert_insert(db)
        stmt = insert(table).values(
            user_id=user.id, habit_id=habit_id, logged_date=day, completed=True,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.user_id, table.c.habit_id, table.c.logged_date],
            set_={"completed": ~table.c.completed},
        )
        db.execute(stmt)
        commit(db)
        logger.info("%s: user %s toggled habit %s for %s", self.name, user.id, habit_id, day)
        return self.list(db, user, day=day)


class ReflectionTracker(Tracker):
    """One reflection per user and day."""

    TEXT_FIELDS = ("gratitude", "accomplishments", "challenges", "notes")
    RATING_FIELDS = ("mood_rating", "energy_level", "productivity_rating")

    def for_day(self, db: Session, user: User, day: date):
        return (
            db.query(models.DailyReflection)
            .filter(models.DailyReflection.user_id == user.id, models.DailyReflection.date == day)
            .first()
        )

    def create(self, db: Session, user: User, fields: dict, day: date | None = None, **filters) -> Snapshot:
        self.save(db, user, fields)
        return self.list(db, user, day=day, **filters)

    def save(self, db: Session, user: User, fields: dict):
        """Insert the day's reflection or overwrite the existing one, atomically."""
        day = fields.get("date") or today()
        values = {k: v for k, v in fields.items() if k in self.TEXT_FIELDS + self.RATING_FIELDS}
        values["updated_at"] = utcnow()

        table = models.DailyReflection.__table__
        insert = upsert_insert(db)
        stmt = insert(table).values(user_id=user.id, date=day, **values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.user_id, table.c.date],
            set_={key: stmt.excluded[key] for key in values},
        )
        db.execute(stmt)
        commit(db)
        logger.info("%s: user %s saved reflection for %s", self.name, user.id, day)
        return self.for_day(db, user, day)


# -- AGGREGATES --

def _percent(part, whole):
    if not whole:
        return 0
    return round(part / whole * 100)


def water_summary(logs):
    total = sum(log.amount_ml for log in logs)
    goal = Config.WATER_GOAL_ML
    return {
        "total_ml": total,
        "entries": len(logs),
        "goal_ml": goal,
        "progress_percent": min(_percent(total, goal), 100),
    }


def habit_summary(habits, logs):
    completed = sum(1 for log in logs if log.completed)
    return {
        "total_habits": len(habits),
        "completed_today": completed,
        "completion_percent": _percent(completed, len(habits)),
    }


GOAL_STATUSES = ("not_started", "in_progress", "completed", "paused")


def goal_status(progress: int) -> str:
    if progress >= 100:
        return "completed"
    if progress > 0:
        return "in_progress"
    return "not_started"


def prepare_goal(fields, goal):
    # status always follows progress; only "paused" may be chosen explicitly
    progress = fields.get("progress_percentage")
    if progress is not None:
        derived = goal_status(progress)
        if not (goal is None and fields.get("status") == "paused" and derived != "completed"):
            fields["status"] = derived
    elif goal is not None and "status" in fields and fields["status"] != "paused":
        fields["status"] = goal_status(goal.progress_percentage)
    if goal is not None:
        fields["updated_at"] = utcnow()
    return fields


def career_summary(goals):
    by_status = {status: 0 for status in GOAL_STATUSES}
    for goal in goals:
        by_status[goal.status] = by_status.get(goal.status, 0) + 1
    progress = [goal.progress_percentage for goal in goals]
    return {
        "total": len(goals),
        "active": len(goals) - by_status["completed"],
        "completed": by_status["completed"],
        "by_status": by_status,
        "average_progress": round(sum(progress) / len(progress)) if progress else 0,
    }


METRIC_UNITS = {
    "weight": "kg",
    "sleep": "hours",
    "mood": "1-10",
    "energy": "1-10",
}


def prepare_metric(fields, metric):
    if not fields.get("unit"):
        fields["unit"] = METRIC_UNITS.get(fields.get("metric_type"), "")
    return fields


def health_summary(metrics):
    latest = {}
    counts = {metric_type: 0 for metric_type in METRIC_UNITS}
    # rows arrive newest first
    for metric in metrics:
        counts[metric.metric_type] = counts.get(metric.metric_type, 0) + 1
        if metric.metric_type not in latest:
            latest[metric.metric_type] = {
                "value": metric.value,
                "unit": metric.unit,
                "recorded_at": metric.recorded_at.isoformat(),
            }
    return {"latest": latest, "counts": counts}


def gym_summary(workouts):
    return {
        "total_workouts": len(workouts),
        "total_minutes": sum(w.duration_minutes for w in workouts),
        "total_calories": sum(w.calories_burned for w in workouts),
    }


def reflection_summary(reflections):
    summary = {"entries": len(reflections)}
    for key in ReflectionTracker.RATING_FIELDS:
        values = [getattr(r, key) for r in reflections if getattr(r, key) is not None]
        summary[f"average_{key}"] = round(sum(values) / len(values), 1) if values else None
    return summary


# -- DOMAIN INSTANCES --

water = Tracker(
    "water", models.WaterIntake, "logged_at",
    day_column="logged_at", day_scoped=True,
    required=("amount_ml",),
    summarize=water_summary,
)

habits = HabitTracker(
    "habits", models.Habit, "created_at",
    base_filters={"is_active": True},
    required=("name",),
)

career = Tracker(
    "career", models.CareerGoal, "created_at",
    filter_fields=("status",),
    required=("title",),
    prepare=prepare_goal,
    summarize=career_summary,
)

health = Tracker(
    "health", models.HealthMetric, "recorded_at",
    filter_fields=("metric_type",),
    limit=Config.HEALTH_FETCH_LIMIT,
    required=("value",),
    prepare=prepare_metric,
    summarize=health_summary,
)

gym = Tracker(
    "gym", models.GymWorkout, "completed_at",
    filter_fields=("workout_type",),
    limit=Config.GYM_FETCH_LIMIT,
    required=("name",),
    summarize=gym_summary,
)

reflections = ReflectionTracker(
    "reflections", models.DailyReflection, "date",
    day_column="date",
    summarize=reflection_summary,
)

TRACKERS = {
    "water": water,
    "habits": habits,
    "career": career,
    "health": health,
    "gym": gym,
    "reflections": reflections,
}


def dashboard_summary(db: Session, user: User, day: date | None = None) -> dict:
    day = day or today()
    water_today = water.list(db, user, day=day).summary
    habits_today = habits.list(db, user, day=day).summary
    goals = career.list(db, user).summary
    workouts = gym.query(db, user).limit(None).count()
    return {
        "water_today_ml": water_today["total_ml"],
        "water_today_liters": round(water_today["total_ml"] / 1000, 2),
        "habits_completed": habits_today["completed_today"],
        "habits_total": habits_today["total_habits"],
        "active_goals": goals["active"],
        "workouts": workouts,
        "latest_metrics": health.list(db, user).summary["latest"],
        "reflected_today": reflections.for_day(db, user, day) is not None,
    }
