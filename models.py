from sqlalchemy import (
    Column, Integer, String, Text, Boolean, Float, Date, DateTime, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from database import Base


def utcnow():
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    profile = relationship("Profile", back_populates="user", uselist=False)


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    email = Column(String, nullable=False)
    full_name = Column(String, nullable=True)
    active_section = Column(String, default="dashboard", nullable=False)

    user = relationship("User", back_populates="profile")


class RevokedToken(Base):
    __tablename__ = "revoked_tokens"

    jti = Column(String, primary_key=True)
    revoked_at = Column(DateTime(timezone=True), default=utcnow)


class WaterIntake(Base):
    __tablename__ = "water_intake"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    amount_ml = Column(Integer, nullable=False)
    logged_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class Habit(Base):
    __tablename__ = "habits"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    category = Column(String, default="general")
    target_frequency = Column(String, default="daily")
    color = Column(String, default="#0ea5e9")
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    logs = relationship("HabitLog", back_populates="habit")


class HabitLog(Base):
    __tablename__ = "habit_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    habit_id = Column(Integer, ForeignKey("habits.id"), nullable=False)
    completed = Column(Boolean, default=True, nullable=False)
    logged_date = Column(Date, nullable=False)

    habit = relationship("Habit", back_populates="logs")

    __table_args__ = (
        UniqueConstraint("user_id", "habit_id", "logged_date", name="uq_habit_log_day"),
    )


class CareerGoal(Base):
    __tablename__ = "career_goals"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String, default="general")
    status = Column(String, default="not_started", nullable=False)
    priority = Column(String, default="medium")
    progress_percentage = Column(Integer, default=0, nullable=False)
    target_date = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow)


class HealthMetric(Base):
    __tablename__ = "health_metrics"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    metric_type = Column(String, nullable=False)
    value = Column(Float, nullable=False)
    unit = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    recorded_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class GymWorkout(Base):
    __tablename__ = "gym_workouts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    workout_type = Column(String, default="strength")
    duration_minutes = Column(Integer, default=30, nullable=False)
    calories_burned = Column(Integer, default=0, nullable=False)
    notes = Column(Text, nullable=True)
    completed_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class DailyReflection(Base):
    __tablename__ = "daily_reflections"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    mood_rating = Column(Integer, default=5)
    energy_level = Column(Integer, default=5)
    productivity_rating = Column(Integer, default=5)
    gratitude = Column(Text, default="")
    accomplishments = Column(Text, default="")
    challenges = Column(Text, default="")
    notes = Column(Text, default="")
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "date", name="uq_reflection_day"),
    )
