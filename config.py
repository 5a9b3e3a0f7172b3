import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./lifeflow.db")
    SECRET_KEY = os.getenv("SECRET_KEY", "supersecretfallback")
    ALGORITHM = os.getenv("ALGORITHM", "HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "43200"))
    WATER_GOAL_ML = int(os.getenv("WATER_GOAL_ML", "2500"))
    HEALTH_FETCH_LIMIT = int(os.getenv("HEALTH_FETCH_LIMIT", "50"))
    GYM_FETCH_LIMIT = int(os.getenv("GYM_FETCH_LIMIT", "20"))
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    HOST = os.getenv("HOST", "127.0.0.1")
    PORT = int(os.getenv("PORT", "8000"))
