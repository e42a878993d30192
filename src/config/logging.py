"""Logging helpers shared by every module of the service."""

import logging

_LOGGER_NAME = "diagram_sync"
_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the diagram_sync hierarchy."""
    return logging.getLogger(f"{_LOGGER_NAME}.{name}")


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Attach a single stream handler to the service logger."""
    resolved = getattr(logging, level.upper(), logging.INFO)
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(resolved)

    # Reset handlers so that repeated app startups (tests, reload) do not duplicate output
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    logger.addHandler(handler)
    return logger
