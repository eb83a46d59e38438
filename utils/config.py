# utils/config.py
from typing import Annotated, List, Optional

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

# LOG_LEVEL is read straight from the environment by utils.log
load_dotenv()


class Settings(BaseSettings):
    """
    Runtime configuration, read from the environment and ``.env``.

    Every field maps to the upper-cased env var of the same name
    (``mongo_uri`` -> ``MONGO_URI``). Empty variables count as unset.
    """

    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "book_tracker"
    mongo_transactions: bool = True

    api_key: Optional[str] = None
    api_port: int = 8000

    smtp_host: Optional[str] = None
    smtp_port: int = 465
    smtp_user: Optional[str] = None
    smtp_pass: Optional[str] = None
    from_email: Optional[str] = None
    alert_email: Optional[str] = None

    schedule_timezone: str = "America/New_York"
    daily_search_cron: str = "0 9 * * *"
    # APScheduler 3 numbers weekdays from Monday, so name the day
    retention_cron: str = "0 2 * * sun"

    research_interval_hours: float = 6.0
    book_delay_seconds: float = 2.0
    user_delay_seconds: float = 1.0
    user_concurrency: int = 1

    retention_days: int = 30
    retention_batch_limit: int = 500

    # comma separated in the environment: ENABLED_SOURCES=craigslist,reddit
    enabled_sources: Annotated[List[str], NoDecode] = ["craigslist", "reddit"]
    craigslist_base_url: str = "https://craigslist.org"
    reddit_base_url: str = "https://www.reddit.com"
    craigslist_rps: float = 0.5
    reddit_rps: float = 2.0

    report_dir: str = "./reports"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    @field_validator("enabled_sources", mode="before")
    @classmethod
    def split_sources(cls, value):
        if isinstance(value, str):
            value = value.split(",")
        return [s.strip().lower() for s in value if s and s.strip()]

    @classmethod
    def from_env(cls):
        """Build settings from the process environment (and .env, if present)."""
        return cls()
