"""Environment-driven settings."""
import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

# Fixed consultation length
SLOT_MINUTES = 30


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    database_path: str = "./consultations.db"
    default_start_time: str = "09:00"
    default_end_time: str = "17:00"
    currency: str = "LKR"
    enforce_edit_window: bool = False
    log_level: str = "INFO"
    port: int = 8000

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables (and .env)."""
        return cls(
            database_path=os.getenv("DATABASE_PATH", cls.database_path),
            default_start_time=os.getenv("DEFAULT_START_TIME", cls.default_start_time),
            default_end_time=os.getenv("DEFAULT_END_TIME", cls.default_end_time),
            currency=os.getenv("CURRENCY", cls.currency),
            enforce_edit_window=_env_bool("ENFORCE_EDIT_WINDOW", cls.enforce_edit_window),
            log_level=os.getenv("LOG_LEVEL", cls.log_level).upper(),
            port=int(os.getenv("PORT", str(cls.port))),
        )


def get_settings() -> Settings:
    return Settings.from_env()
