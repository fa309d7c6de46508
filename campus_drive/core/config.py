import os
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from campus_drive.core.paths import resolve_repo_path


def _env_files() -> list[str]:
    base = resolve_repo_path(".env")
    env = os.getenv("CD_ENVIRONMENT", "").strip().lower()
    files = [str(base)]
    if env and env != "development":
        files.append(str(resolve_repo_path(f".env.{env}")))
    else:
        files.append(str(resolve_repo_path(".env.local")))
    return files


class Settings(BaseSettings):
    app_name: str = "Campus Drive"
    environment: str = "development"

    database_url: str = "sqlite+aiosqlite:///./campus_drive.db"
    auth_mode: Literal["dev"] = "dev"

    negotiation_max_rounds: int = 5
    negotiation_review_window_seconds: int = 5
    invitation_default_expiry_days: int = 7
    invitation_max_expiry_days: int = 90

    join_early_minutes: int = 15

    scheduler_enabled: bool = True
    expiry_sweep_minutes: int = 15

    storage_retry_attempts: int = 3
    redis_url: str = ""
    event_channel: str = "cd:events"

    model_config = SettingsConfigDict(env_prefix="CD_", env_file=_env_files(), extra="ignore")


settings = Settings()
