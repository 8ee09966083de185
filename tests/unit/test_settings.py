"""Unit tests for Settings and logging setup"""
import logging

import pytest

from domain.settings import Settings, configure_logging


@pytest.mark.unit
class TestSettingsFromEnv:
    """Test CHAT_* environment overrides"""

    def test_defaults(self, monkeypatch):
        """Test that unset variables leave the defaults in place"""
        for name in ("CHAT_SOCKET_URL", "CHAT_PAGE_SIZE", "CHAT_HISTORY_SOURCE", "CHAT_AGENT_ID"):
            monkeypatch.delenv(name, raising=False)

        settings = Settings.from_env()

        assert settings.socket_url == "ws://localhost:4000/ws"
        assert settings.page_size == 30
        assert settings.reconnect_attempts == 5
        assert settings.history_source == "rest"
        assert settings.agent_id == "1"

    def test_overrides(self, monkeypatch):
        """Test that set variables override the defaults"""
        monkeypatch.setenv("CHAT_SOCKET_URL", "ws://chat.example:9000/ws")
        monkeypatch.setenv("CHAT_PAGE_SIZE", "50")
        monkeypatch.setenv("CHAT_RECONNECT_DELAY", "2.5")
        monkeypatch.setenv("CHAT_HISTORY_SOURCE", "Socket")
        monkeypatch.setenv("CHAT_LOG_LEVEL", "debug")

        settings = Settings.from_env()

        assert settings.socket_url == "ws://chat.example:9000/ws"
        assert settings.page_size == 50
        assert settings.reconnect_delay == 2.5
        assert settings.history_source == "socket"
        assert settings.log_level == "DEBUG"

    def test_timing_overrides(self, monkeypatch):
        """Test that connect timeout, scroll threshold and settle delay are configurable"""
        monkeypatch.setenv("CHAT_CONNECT_TIMEOUT", "7.5")
        monkeypatch.setenv("CHAT_SCROLL_THRESHOLD", "120")
        monkeypatch.setenv("CHAT_SETTLE_DELAY", "0")

        settings = Settings.from_env()

        assert settings.connect_timeout == 7.5
        assert settings.scroll_threshold == 120.0
        assert settings.settle_delay == 0.0

    def test_invalid_number_falls_back(self, monkeypatch, caplog):
        """Test that an unparseable number logs a warning and keeps the default"""
        monkeypatch.setenv("CHAT_PAGE_SIZE", "lots")

        settings = Settings.from_env()

        assert settings.page_size == 30
        assert "CHAT_PAGE_SIZE" in caplog.text

    def test_unknown_history_source_falls_back(self, monkeypatch):
        """Test that an unknown history source falls back to REST"""
        monkeypatch.setenv("CHAT_HISTORY_SOURCE", "carrier-pigeon")
        assert Settings.from_env().history_source == "rest"


@pytest.mark.unit
class TestConfigureLogging:
    """Test root logger setup"""

    def test_single_handler_installed(self):
        """Test that repeated setup installs one handler and updates the level"""
        root = logging.getLogger()
        level = root.level
        try:
            configure_logging("DEBUG")
            configure_logging("WARNING")
            ours = [h for h in root.handlers if getattr(h, "_chat_sync", False)]
            assert len(ours) == 1
            assert root.level == logging.WARNING
        finally:
            for handler in [h for h in root.handlers if getattr(h, "_chat_sync", False)]:
                root.removeHandler(handler)
            root.setLevel(level)
