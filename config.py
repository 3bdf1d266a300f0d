import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        secret_key: str,
        auth_mode: str,
        default_user_id: int,
        token_max_age_secs: int,
        reminder_window_days: int,
        scheduler_enabled: bool,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.secret_key = secret_key
        self.auth_mode = auth_mode
        self.default_user_id = default_user_id
        self.token_max_age_secs = token_max_age_secs
        self.reminder_window_days = reminder_window_days
        self.scheduler_enabled = scheduler_enabled


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("BUDGET_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("BUDGET_DATABASE_URL")
    if not database_url:
        database_url = f"sqlite:///{_ensure_data_dir() / 'budget.db'}"
    timezone = os.getenv("BUDGET_TIMEZONE", "America/New_York")
    secret_key = os.getenv(
        "BUDGET_SECRET_KEY",
        "5f0c3b1e9a4d27c86e1b0f3a2d9c74e6b8a15f2c3d4e6f708192a3b4c5d6e7f8",
    )
    auth_mode = os.getenv("BUDGET_AUTH_MODE", "default").strip().lower()
    default_user_id = int(os.getenv("BUDGET_DEFAULT_USER_ID", "1"))
    token_max_age_secs = int(os.getenv("BUDGET_TOKEN_MAX_AGE_SECS", str(30 * 86400)))
    reminder_window_days = int(os.getenv("BUDGET_REMINDER_WINDOW_DAYS", "30"))
    scheduler_enabled = _env_flag("BUDGET_SCHEDULER_ENABLED", "1")
    return Settings(
        database_url=database_url,
        timezone=timezone,
        secret_key=secret_key,
        auth_mode=auth_mode,
        default_user_id=default_user_id,
        token_max_age_secs=token_max_age_secs,
        reminder_window_days=reminder_window_days,
        scheduler_enabled=scheduler_enabled,
    )
