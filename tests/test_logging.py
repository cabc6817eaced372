import importlib
import logging

import src.companion as companion_pkg


def _reconfigure(monkeypatch, **env):
    for key in ("COMPANION_LOG_LEVEL", "COMPANION_RELAY_LOG_LEVEL", "COMPANION_LLM_LOG_LEVEL"):
        monkeypatch.delenv(key, raising=False)
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    importlib.reload(companion_pkg)


def test_child_loggers_follow_package_level_by_default(monkeypatch):
    _reconfigure(monkeypatch, COMPANION_LOG_LEVEL="warning")
    assert logging.getLogger("companion").level == logging.WARNING
    assert logging.getLogger("companion.relay").level == logging.WARNING
    assert logging.getLogger("companion.llm").level == logging.WARNING
    _reconfigure(monkeypatch)


def test_generation_client_logger_can_be_tuned_separately(monkeypatch):
    _reconfigure(monkeypatch, COMPANION_LLM_LOG_LEVEL="DEBUG", COMPANION_RELAY_LOG_LEVEL="ERROR")
    assert logging.getLogger("companion").level == logging.INFO
    assert logging.getLogger("companion.llm").level == logging.DEBUG
    assert logging.getLogger("companion.relay").level == logging.ERROR
    _reconfigure(monkeypatch)


def test_unknown_level_names_fall_back_and_handler_is_not_duplicated(monkeypatch):
    _reconfigure(monkeypatch, COMPANION_LOG_LEVEL="loud", COMPANION_LLM_LOG_LEVEL="basicConfig")
    _reconfigure(monkeypatch, COMPANION_LOG_LEVEL="loud", COMPANION_LLM_LOG_LEVEL="basicConfig")
    assert logging.getLogger("companion").level == logging.INFO
    assert logging.getLogger("companion.llm").level == logging.INFO
    assert len(logging.getLogger("companion").handlers) == 1
    _reconfigure(monkeypatch)
