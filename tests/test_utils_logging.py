import logging

import pytest
from pythonjsonlogger import jsonlogger

import canvass.utils.logging as log_utils


@pytest.fixture(autouse=True)
def restore_package_loggers():
    saved = {}
    for name in log_utils.PACKAGE_LOGGERS:
        package_logger = logging.getLogger(name)
        saved[name] = (package_logger.handlers[:], package_logger.level, package_logger.propagate)
    yield
    for name, (handlers, level, propagate) in saved.items():
        package_logger = logging.getLogger(name)
        package_logger.handlers = handlers
        package_logger.setLevel(level)
        package_logger.propagate = propagate


def test_setup_logging_production_json(monkeypatch, tmp_path):
    monkeypatch.setattr(log_utils.settings, "ENVIRONMENT", "production", raising=False)
    monkeypatch.setattr(log_utils.settings, "LOG_LEVEL", "INFO", raising=False)
    monkeypatch.setattr(log_utils.settings, "LOG_DIR", str(tmp_path), raising=False)

    log_utils.setup_logging("test_run_prod")
    handlers = logging.getLogger("canvass").handlers

    assert len(handlers) == 2
    assert all(isinstance(h.formatter, jsonlogger.JsonFormatter) for h in handlers)
    assert any(p.name.startswith("test_run_prod_") for p in tmp_path.iterdir())


def test_setup_logging_dev_formatter(monkeypatch):
    monkeypatch.setattr(log_utils.settings, "ENVIRONMENT", "development", raising=False)
    monkeypatch.setattr(log_utils.settings, "LOG_LEVEL", "DEBUG", raising=False)
    monkeypatch.setattr(log_utils.settings, "LOG_DIR", "", raising=False)

    logger = log_utils.setup_logging("test_run_dev")
    handlers = logging.getLogger("canvass").handlers

    assert len(handlers) == 1
    assert not isinstance(handlers[0].formatter, jsonlogger.JsonFormatter)
    assert logger.getEffectiveLevel() == logging.DEBUG


def test_setup_logging_covers_module_loggers_and_spares_root(monkeypatch):
    monkeypatch.setattr(log_utils.settings, "ENVIRONMENT", "development", raising=False)
    monkeypatch.setattr(log_utils.settings, "LOG_DIR", "", raising=False)
    root_handlers = logging.getLogger().handlers[:]

    logger = log_utils.setup_logging("test_run_scope")

    assert logger.name == "canvass.test_run_scope"
    assert logging.getLogger("config").handlers == logging.getLogger("canvass").handlers
    assert logging.getLogger("canvass").propagate is False
    assert logging.getLogger().handlers == root_handlers
    # A module logger has no handlers of its own but reaches the package ones
    assert log_utils.get_logger("canvass.services.neighborhood_service").hasHandlers()


def test_setup_logging_replaces_previous_handlers(monkeypatch):
    monkeypatch.setattr(log_utils.settings, "LOG_DIR", "", raising=False)

    log_utils.setup_logging("first")
    first = logging.getLogger("canvass").handlers[:]
    log_utils.setup_logging("second")

    assert len(logging.getLogger("canvass").handlers) == 1
    assert logging.getLogger("canvass").handlers != first


def test_get_logger_returns_named_logger():
    logger = log_utils.get_logger("canvass.some.module")
    assert logger.name == "canvass.some.module"
