# island_tracker/config/settings.py
from typing import Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Either a full SQLAlchemy URL or the MySQL parts below
    database_url: Optional[str] = None

    db_user: Optional[str] = None
    db_pass: Optional[str] = None
    db_host: str = "localhost"
    db_port: Optional[int] = None
    db_name: Optional[str] = None

    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    access_token_minutes: int = 60 * 24

    default_timezone: str = "UTC"

    challenge_length_days: int = 30
    fail_on_missed_makeup: bool = True
    missed_day_sweep_minutes: str = "*/15"

    notification_capacity: int = 50
    notification_display_seconds: float = 5.0


settings = Settings()
