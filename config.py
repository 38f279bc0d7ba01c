import os
from functools import lru_cache
from typing import List, Optional

from pydantic import BaseModel, Field


class Settings(BaseModel):
    secret_key: str = "supersecretkey"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = Field(60, ge=1)
    database_url: Optional[str] = None
    database_name: str = "shop"
    database_timeout_ms: int = Field(5000, ge=1)
    cors_origins: List[str] = ["*"]
    log_level: str = "INFO"
    port: int = 8000


@lru_cache()
def get_settings() -> Settings:
    """Read settings from the environment once per process."""
    env = {
        "secret_key": os.getenv("SECRET_KEY"),
        "algorithm": os.getenv("ALGORITHM"),
        "access_token_expire_minutes": os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES"),
        "database_url": os.getenv("DATABASE_URL"),
        "database_name": os.getenv("DATABASE_NAME"),
        "database_timeout_ms": os.getenv("DATABASE_TIMEOUT_MS"),
        "log_level": os.getenv("LOG_LEVEL"),
        "port": os.getenv("PORT"),
    }
    origins = os.getenv("CORS_ORIGINS")
    if origins:
        env["cors_origins"] = [o.strip() for o in origins.split(",") if o.strip()]
    return Settings(**{k: v for k, v in env.items() if v})
