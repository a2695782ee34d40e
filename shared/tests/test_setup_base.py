"""Config loading and logger levels."""

import io

import pytest

from shared.logutil import LogUtil
from shared.setup_base import SetupBase

TRUTH = {
    "components": {
        "journal": {
            "meta": {"owner": "journal"},
            "env": {"JOURNAL_PORT": "5001", "LOG_LEVEL": "INFO"},
        }
    }
}


def test_build_config_env_injection(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.delenv("JOURNAL_PORT", raising=False)
    monkeypatch.delenv("DEFAULT_INITIAL_BALANCE", raising=False)

    cfg = SetupBase("journal", defaults={"DEFAULT_INITIAL_BALANCE": "10000", "JOURNAL_PORT": "9999"}).build_config(TRUTH)

    assert cfg["service_name"] == "journal"
    assert cfg["meta"] == {"owner": "journal"}
    assert cfg["JOURNAL_PORT"] == "5001"          # truth beats service default
    assert cfg["LOG_LEVEL"] == "DEBUG"            # shell beats truth
    assert cfg["DEFAULT_INITIAL_BALANCE"] == "10000"


def test_build_config_missing_component():
    with pytest.raises(RuntimeError):
        SetupBase("journal").build_config({"components": {}})


def test_logger_levels(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "WARN")
    monkeypatch.delenv("JOURNAL_DEBUG", raising=False)
    out = io.StringIO()
    logger = LogUtil("journal", stream=out)

    logger.info("hidden")
    logger.warn("shown")
    assert "hidden" not in out.getvalue()
    assert "[journal][WARN]" in out.getvalue()

    logger.configure_from_config({"LOG_LEVEL": "DEBUG"})
    logger.debug("now visible")
    assert logger.debug_enabled
    assert "now visible" in out.getvalue()


def test_logger_never_raises():
    class Broken:
        def write(self, _):
            raise OSError("closed")

    LogUtil("journal", stream=Broken()).error("still fine")


def test_logger_config_level_rules(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "ERROR")
    monkeypatch.delenv("JOURNAL_DEBUG", raising=False)

    logger = LogUtil("journal", stream=io.StringIO())
    logger.configure_from_config({"LOG_LEVEL": "CHATTY"})
    assert logger.level_name == "ERROR"

    forced = LogUtil("journal", stream=io.StringIO())
    forced.configure_from_config({"LOG_LEVEL": "WARN", "JOURNAL_DEBUG": "true"})
    assert forced.level_name == "DEBUG"

    forced.configure_from_config({"LOG_LEVEL": "ERROR"})
    assert forced.level_name == "DEBUG"
