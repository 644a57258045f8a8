"""Tests for environment-driven configuration."""

import pytest

from core.config import Config


class TestConfig:
    def test_defaults(self):
        cfg = Config.from_env({})
        assert cfg.fetch_timeout == 10.0
        assert cfg.port == 8080
        assert cfg.host == "0.0.0.0"
        assert cfg.log_level == "INFO"

    def test_overrides(self):
        cfg = Config.from_env({
            "PODCAST_EVENTS_FETCH_TIMEOUT": "2.5",
            "PODCAST_EVENTS_PORT": "9000",
            "PODCAST_EVENTS_HOST": "127.0.0.1",
            "PODCAST_EVENTS_LOG_LEVEL": "debug",
        })
        assert cfg.fetch_timeout == 2.5
        assert cfg.port == 9000
        assert cfg.host == "127.0.0.1"
        assert cfg.log_level == "DEBUG"

    def test_blank_values_use_defaults(self):
        assert Config.from_env({"PODCAST_EVENTS_PORT": " "}).port == 8080

    def test_bad_number_names_variable(self):
        with pytest.raises(ValueError, match="PODCAST_EVENTS_PORT"):
            Config.from_env({"PODCAST_EVENTS_PORT": "eighty"})

    def test_reads_os_environ(self, monkeypatch):
        monkeypatch.setenv("PODCAST_EVENTS_FETCH_TIMEOUT", "1")
        assert Config.from_env().fetch_timeout == 1.0
