import logging
import sys

SESSION_LOGGER = "assessment_engine.session"


def configure_logging(level: str = "INFO", *, session_level: str | None = None) -> None:
    """Configure root logging for the engine and its API.

    *session_level* overrides the level of the session loggers (timer,
    controller, submitter), which log on every tick at DEBUG.
    """
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s - %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        stream=sys.stdout,
        force=True,
    )
    logging.getLogger(SESSION_LOGGER).setLevel(session_level or level)
    # Suppress noisy third-party loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
