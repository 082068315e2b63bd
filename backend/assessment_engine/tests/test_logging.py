import logging

from assessment_engine.core.logging import SESSION_LOGGER, configure_logging


def test_session_level_override() -> None:
    configure_logging("INFO", session_level="WARNING")
    assert logging.getLogger().level == logging.INFO
    assert logging.getLogger(SESSION_LOGGER).level == logging.WARNING
    assert logging.getLogger("assessment_engine.session.timer").getEffectiveLevel() == logging.WARNING


def test_session_level_defaults_to_root_level() -> None:
    configure_logging("DEBUG")
    assert logging.getLogger(SESSION_LOGGER).level == logging.DEBUG
    assert logging.getLogger("httpx").level == logging.WARNING
