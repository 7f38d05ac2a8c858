import logging
import sys

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s %(message)s"


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Attach a single stdout handler to the ``eauth`` logger (safe to call twice)."""
    logger = logging.getLogger("eauth")
    logger.setLevel(level.upper())

    # Prevent creation of handlers more than once
    if logger.handlers:
        return logger

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    return logger
