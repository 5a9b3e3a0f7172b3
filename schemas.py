import datetime as dt
from datetime import date, datetime
from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]

HabitCategory = Literal["general", "health", "productivity", "wellness", "fitness", "learning"]
HabitFrequency = Literal["daily", "weekly", "monthly"]
GoalCategory = Literal["general", "skills", "promotion", "project", "networking", "education"]
GoalStatus = Literal["not_started", "in_progress", "completed", "paused"]
GoalPriority = Literal["low", "medium", "high", "urgent"]
MetricType = Literal["weight", "sleep", "mood", "energy"]
WorkoutType = Literal["strength", "cardio", "flexibility", "sports", "other"]
Rating = Annotated[int, Field(ge=1, le=10)]
Progress = Annotated[int, Field(ge=0, le=100)]


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# -- AUTH --

class Token(BaseModel):
    access_token: str
    token_type: str


class ProfileOut(ORMModel):
    id: int
    email: str
    full_name: Optional[str] = None


class SessionOut(BaseModel):
    signed_in: bool
    user: Optional[ProfileOut] = None


# -- WATER --

class WaterCreate(BaseModel):
    amount_ml: Annotated[int, Field(gt=0)]
    logged_at: Optional[datetime] = None


class WaterLogOut(ORMModel):
    id: int
    amount_ml: int
    logged_at: datetime


class WaterSnapshot(ORMModel):
    items: List[WaterLogOut]
    summary: Dict[str, Any]


# -- HABITS --

class HabitCreate(BaseModel):
    name: NonEmptyStr
    description: str = ""
    category: HabitCategory = "general"
    target_frequency: HabitFrequency = "daily"
    color: str = "#0ea5e9"


class HabitUpdate(BaseModel):
    name: Optional[NonEmptyStr] = None
    description: Optional[str] = None
    category: Optional[HabitCategory] = None
    target_frequency: Optional[HabitFrequency] = None
    color: Optional[str] = None


class HabitOut(ORMModel):
    id: int
    name: str
    description: Optional[str] = None
    category: str
    target_frequency: str
    color: str
    is_active: bool
    created_at: datetime


class HabitLogOut(ORMModel):
    id: int
    habit_id: int
    completed: bool
    logged_date: date


class HabitSnapshot(ORMModel):
    items: List[HabitOut]
    logs: List[HabitLogOut]
    summary: Dict[str, Any]


# -- CAREER --

class CareerGoalCreate(BaseModel):
    title: NonEmptyStr
    description: str = ""
    category: GoalCategory = "general"
    status: GoalStatus = "not_started"
    priority: GoalPriority = "medium"
    target_date: Optional[date] = None
    progress_percentage: Progress = 0


class CareerGoalUpdate(BaseModel):
    title: Optional[NonEmptyStr] = None
    description: Optional[str] = None
    category: Optional[GoalCategory] = None
    status: Optional[GoalStatus] = None
    priority: Optional[GoalPriority] = None
    target_date: Optional[date] = None
    progress_percentage: Optional[Progress] = None


class ProgressUpdate(BaseModel):
    progress_percentage: Progress


class CareerGoalOut(ORMModel):
    id: int
    title: str
    description: Optional[str] = None
    category: str
    status: str
    priority: str
    progress_percentage: int
    target_date: Optional[date] = None
    created_at: datetime
    updated_at: datetime


class CareerSnapshot(ORMModel):
    items: List[CareerGoalOut]
    summary: Dict[str, Any]


# -- HEALTH --

class HealthMetricCreate(BaseModel):
    metric_type: MetricType = "weight"
    value: float
    unit: Optional[str] = None
    notes: str = ""
    recorded_at: Optional[datetime] = None


class HealthMetricOut(ORMModel):
    id: int
    metric_type: str
    value: float
    unit: Optional[str] = None
    notes: Optional[str] = None
    recorded_at: datetime


class HealthSnapshot(ORMModel):
    items: List[HealthMetricOut]
    summary: Dict[str, Any]


# -- GYM --

class GymWorkoutCreate(BaseModel):
    name: NonEmptyStr
    workout_type: WorkoutType = "strength"
    duration_minutes: Annotated[int, Field(ge=0)] = 30
    calories_burned: Annotated[int, Field(ge=0)] = 0
    notes: str = ""
    completed_at: Optional[datetime] = None


class GymWorkoutOut(ORMModel):
    id: int
    name: str
    workout_type: str
    duration_minutes: int
    calories_burned: int
    notes: Optional[str] = None
    completed_at: datetime


class GymSnapshot(ORMModel):
    items: List[GymWorkoutOut]
    summary: Dict[str, Any]


# -- REFLECTIONS --

class ReflectionSave(BaseModel):
    date: Optional[dt.date] = None
    mood_rating: Rating = 5
    energy_level: Rating = 5
    productivity_rating: Rating = 5
    gratitude: str = ""
    accomplishments: str = ""
    challenges: str = ""
    notes: str = ""


class ReflectionOut(ORMModel):
    id: int
    date: dt.date
    mood_rating: int
    energy_level: int
    productivity_rating: int
    gratitude: Optional[str] = None
    accomplishments: Optional[str] = None
    challenges: Optional[str] = None
    notes: Optional[str] = None


class ReflectionDay(BaseModel):
    """A day's reflection, or the blank form when nothing was saved yet."""
    saved: bool
    reflection: ReflectionSave
    id: Optional[int] = None


class ReflectionSnapshot(ORMModel):
    items: List[ReflectionOut]
    summary: Dict[str, Any]


# -- SHELL --

class SectionOut(BaseModel):
    id: str
    label: str


class ShellOut(BaseModel):
    sections: List[SectionOut]
    active_section: str
    content: Dict[str, Any]


class DashboardOut(BaseModel):
    water_today_ml: int
    water_today_liters: float
    habits_completed: int
    habits_total: int
    active_goals: int
    workouts: int
    latest_metrics: Dict[str, Any]
    reflected_today: bool
