# tests/test_config.py
from utils.config import Settings


def test_defaults_match_documented_behaviour(monkeypatch):
    for name in ("ENABLED_SOURCES", "MONGO_TRANSACTIONS", "RESEARCH_INTERVAL_HOURS",
                 "RETENTION_BATCH_LIMIT", "DAILY_SEARCH_CRON", "RETENTION_CRON",
                 "SCHEDULE_TIMEZONE", "BOOK_DELAY_SECONDS", "USER_DELAY_SECONDS",
                 "USER_CONCURRENCY", "RETENTION_DAYS"):
        monkeypatch.delenv(name, raising=False)

    s = Settings.from_env()

    assert s.enabled_sources == ["craigslist", "reddit"]
    assert s.mongo_transactions is True
    assert s.research_interval_hours == 6.0
    assert s.book_delay_seconds == 2.0
    assert s.user_delay_seconds == 1.0
    assert s.user_concurrency == 1
    assert s.retention_days == 30
    assert s.retention_batch_limit == 500
    assert s.daily_search_cron == "0 9 * * *"
    assert s.retention_cron == "0 2 * * sun"
    assert s.schedule_timezone == "America/New_York"


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("ENABLED_SOURCES", " Reddit , ,craigslist")
    monkeypatch.setenv("MONGO_TRANSACTIONS", "false")
    monkeypatch.setenv("RETENTION_BATCH_LIMIT", "250")
    monkeypatch.setenv("REDDIT_RPS", "0.25")
    monkeypatch.setenv("SMTP_PORT", "587")
    monkeypatch.setenv("API_KEY", "")

    s = Settings.from_env()

    assert s.enabled_sources == ["reddit", "craigslist"]
    assert s.mongo_transactions is False
    assert s.retention_batch_limit == 250
    assert s.reddit_rps == 0.25
    assert s.smtp_port == 587
    assert s.api_key is None


def test_dotenv_file_is_read(monkeypatch, tmp_path):
    for name in ("MONGO_DB", "USER_CONCURRENCY", "ENABLED_SOURCES"):
        monkeypatch.delenv(name, raising=False)
    (tmp_path / ".env").write_text(
        "MONGO_DB=tracker_dev\nUSER_CONCURRENCY=3\nENABLED_SOURCES=reddit\nUNRELATED_KEY=x\n"
    )
    monkeypatch.chdir(tmp_path)

    s = Settings.from_env()

    assert s.mongo_db == "tracker_dev"
    assert s.user_concurrency == 3
    assert s.enabled_sources == ["reddit"]


def test_explicit_values_win_over_environment(monkeypatch):
    monkeypatch.setenv("API_KEY", "from-env")
    monkeypatch.setenv("ENABLED_SOURCES", "craigslist")

    s = Settings(api_key="explicit", enabled_sources=["Reddit"])

    assert s.api_key == "explicit"
    assert s.enabled_sources == ["reddit"]
