"""
Unit tests for settings and logging setup.
"""

from pathlib import Path

from loguru import logger

from practice_scheduler.config import Settings
from practice_scheduler.logging_setup import configure_logging


class TestSettings:
    def test_defaults(self, monkeypatch):
        for name in ("PRACTICE_DAILY_TARGET", "PRACTICE_STRICT_ENRICHMENT", "PRACTICE_DB_PATH"):
            monkeypatch.delenv(name, raising=False)

        settings = Settings(_env_file=None)
        config = settings.get_queue_config()

        assert config.target_daily_reviews == 20
        assert config.min_daily_reviews == 10
        assert config.max_daily_reviews == 50
        assert config.strict_enrichment is True
        assert settings.db_path.name == "progress.db"

    def test_environment_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("PRACTICE_DAILY_TARGET", "30")
        monkeypatch.setenv("PRACTICE_STRICT_ENRICHMENT", "false")
        monkeypatch.setenv("PRACTICE_DB_PATH", str(tmp_path / "p.db"))

        settings = Settings(_env_file=None)
        config = settings.get_queue_config()

        assert config.target_daily_reviews == 30
        assert config.strict_enrichment is False
        assert settings.db_path == Path(tmp_path / "p.db")


class TestConfigureLogging:
    def test_file_sink_receives_debug(self, tmp_path):
        log_file = tmp_path / "practice.log"
        configure_logging("ERROR", str(log_file))

        logger.debug("queue built")
        logger.complete()

        assert "queue built" in log_file.read_text(encoding="utf-8")
        configure_logging("WARNING")
