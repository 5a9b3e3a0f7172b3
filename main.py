from contextlib import asynccontextmanager
from datetime import date
import logging

from fastapi import FastAPI, Depends, Request
from fastapi.responses import JSONResponse
import uvicorn
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import Config
from database import engine, get_db
import models
import schemas
import trackers
from models import User
from auth import router as auth_router, get_current_user, session_manager
from shell import ViewShell

logging.basicConfig(level=Config.LOG_LEVEL)
logger = logging.getLogger(__name__)

models.Base.metadata.create_all(bind=engine)


def log_session_change(event: str, user: User):
    logger.info("Session change: %s (user %s)", event, user.id)


@asynccontextmanager
async def lifespan(app: FastAPI):
    unsubscribe = session_manager.subscribe(log_session_change)
    try:
        yield
    finally:
        unsubscribe()


app = FastAPI(title="LifeFlow", lifespan=lifespan)
app.include_router(auth_router)


@app.exception_handler(SQLAlchemyError)
async def storage_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("Storage operation failed on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=503, content={"detail": "Storage operation failed"})


SNAPSHOT_SCHEMAS = {
    "water": schemas.WaterSnapshot,
    "habits": schemas.HabitSnapshot,
    "career": schemas.CareerSnapshot,
    "health": schemas.HealthSnapshot,
    "gym": schemas.GymSnapshot,
    "reflections": schemas.ReflectionSnapshot,
}


def render(section: str, snapshot: trackers.Snapshot):
    return SNAPSHOT_SCHEMAS[section].model_validate(snapshot, from_attributes=True)


@app.get("/")
def root():
    return {"message": "API is active 🚀"}

@app.get("/ping")
def ping():
    return {"message": "pong 🏓"}

# --- Water ---

@app.get("/water", response_model=schemas.WaterSnapshot)
def get_water(day: date | None = None, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return render("water", trackers.water.list(db, current_user, day=day))

@app.post("/water", response_model=schemas.WaterSnapshot, status_code=201)
def add_water(entry: schemas.WaterCreate, day: date | None = None, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    snapshot = trackers.water.create(db, current_user, entry.model_dump(exclude_none=True), day=day)
    return render("water", snapshot)

@app.delete("/water/{log_id}", response_model=schemas.WaterSnapshot)
def delete_water(log_id: int, day: date | None = None, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return render("water", trackers.water.delete(db, current_user, log_id, day=day))

# --- Habits ---

@app.get("/habits", response_model=schemas.HabitSnapshot)
def get_habits(day: date | None = None, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return render("habits", trackers.habits.list(db, current_user, day=day))

@app.post("/habits", response_model=schemas.HabitSnapshot, status_code=201)
def create_habit(habit: schemas.HabitCreate, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return render("habits", trackers.habits.create(db, current_user, habit.model_dump()))

@app.put("/habits/{habit_id}", response_model=schemas.HabitSnapshot)
def update_habit(habit_id: int, updated_data: schemas.HabitUpdate, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    snapshot = trackers.habits.update(db, current_user, habit_id, updated_data.model_dump(exclude_unset=True, exclude_none=True))
    return render("habits", snapshot)

# habits are deactivated, their logs are kept
@app.delete("/habits/{habit_id}", response_model=schemas.HabitSnapshot)
def delete_habit(habit_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return render("habits", trackers.habits.deactivate(db, current_user, habit_id))

@app.post("/habits/{habit_id}/toggle", response_model=schemas.HabitSnapshot)
def toggle_habit(habit_id: int, day: date | None = None, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return render("habits", trackers.habits.toggle(db, current_user, habit_id, day=day))

@app.get("/habits/{habit_id}/logs", response_model=list[schemas.HabitLogOut])
def get_logs(habit_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return trackers.habits.history(db, current_user, habit_id)

# --- Career ---

@app.get("/career", response_model=schemas.CareerSnapshot)
def get_goals(status: schemas.GoalStatus | None = None, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return render("career", trackers.career.list(db, current_user, status=status))

@app.post("/career", response_model=schemas.CareerSnapshot, status_code=201)
def create_goal(goal: schemas.CareerGoalCreate, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return render("career", trackers.career.create(db, current_user, goal.model_dump()))

@app.put("/career/{goal_id}", response_model=schemas.CareerSnapshot)
def update_goal(goal_id: int, updated_data: schemas.CareerGoalUpdate, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    snapshot = trackers.career.update(db, current_user, goal_id, updated_data.model_dump(exclude_unset=True, exclude_none=True))
    return render("career", snapshot)

@app.put("/career/{goal_id}/progress", response_model=schemas.CareerSnapshot)
def update_progress(goal_id: int, progress: schemas.ProgressUpdate, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    snapshot = trackers.career.update(db, current_user, goal_id, progress.model_dump())
    return render("career", snapshot)

@app.delete("/career/{goal_id}", response_model=schemas.CareerSnapshot)
def delete_goal(goal_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return render("career", trackers.career.delete(db, current_user, goal_id))

# --- Health ---

@app.get("/health", response_model=schemas.HealthSnapshot)
def get_metrics(metric_type: schemas.MetricType | None = None, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return render("health", trackers.health.list(db, current_user, metric_type=metric_type))

@app.post("/health", response_model=schemas.HealthSnapshot, status_code=201)
def add_metric(metric: schemas.HealthMetricCreate, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return render("health", trackers.health.create(db, current_user, metric.model_dump(exclude_none=True)))

@app.delete("/health/{metric_id}", response_model=schemas.HealthSnapshot)
def delete_metric(metric_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return render("health", trackers.health.delete(db, current_user, metric_id))

# --- Gym ---

@app.get("/gym", response_model=schemas.GymSnapshot)
def get_workouts(workout_type: schemas.WorkoutType | None = None, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return render("gym", trackers.gym.list(db, current_user, workout_type=workout_type))

@app.post("/gym", response_model=schemas.GymSnapshot, status_code=201)
def add_workout(workout: schemas.GymWorkoutCreate, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return render("gym", trackers.gym.create(db, current_user, workout.model_dump(exclude_none=True)))

@app.delete("/gym/{workout_id}", response_model=schemas.GymSnapshot)
def delete_workout(workout_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return render("gym", trackers.gym.delete(db, current_user, workout_id))

# --- Reflections ---

def reflection_day(row, day: date) -> schemas.ReflectionDay:
    if row is None:
        return schemas.ReflectionDay(saved=False, reflection=schemas.ReflectionSave(date=day))

    form = {"date": row.date}
    for key in trackers.ReflectionTracker.RATING_FIELDS:
        form[key] = getattr(row, key) or 5
    for key in trackers.ReflectionTracker.TEXT_FIELDS:
        form[key] = getattr(row, key) or ""
    return schemas.ReflectionDay(saved=True, id=row.id, reflection=schemas.ReflectionSave(**form))

@app.get("/reflections", response_model=schemas.ReflectionSnapshot)
def get_reflections(day: date | None = None, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return render("reflections", trackers.reflections.list(db, current_user, day=day))

@app.get("/reflections/{day}", response_model=schemas.ReflectionDay)
def get_reflection(day: date, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return reflection_day(trackers.reflections.for_day(db, current_user, day), day)

@app.put("/reflections", response_model=schemas.ReflectionDay)
def save_reflection(reflection: schemas.ReflectionSave, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    row = trackers.reflections.save(db, current_user, reflection.model_dump(exclude_none=True))
    return reflection_day(row, row.date)

@app.delete("/reflections/{reflection_id}", response_model=schemas.ReflectionSnapshot)
def delete_reflection(reflection_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return render("reflections", trackers.reflections.delete(db, current_user, reflection_id))

# --- Dashboard & navigation ---

@app.get("/dashboard", response_model=schemas.DashboardOut)
def get_dashboard(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return trackers.dashboard_summary(db, current_user)


def shell_frame(db: Session, user: User, view: ViewShell) -> schemas.ShellOut:
    section = view.active_section
    if section == "dashboard":
        content = trackers.dashboard_summary(db, user)
    else:
        content = render(section, trackers.TRACKERS[section].list(db, user)).model_dump(mode="json")
    return schemas.ShellOut(sections=view.sections, active_section=section, content=content)

@app.get("/shell", response_model=schemas.ShellOut)
def get_shell(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return shell_frame(db, current_user, ViewShell(current_user.profile.active_section))

@app.put("/shell/{section}", response_model=schemas.ShellOut)
def select_section(section: str, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    profile = current_user.profile
    view = ViewShell(profile.active_section)
    profile.active_section = view.select(section)
    trackers.commit(db)
    logger.info("User %s switched to %s", current_user.id, view.active_section)
    return shell_frame(db, current_user, view)


if __name__ == "__main__":
    uvicorn.run("main:app", host=Config.HOST, port=Config.PORT)
