# Logging setup for the quiz service.
import logging
from logging import Logger


# Configure basic logging and return the package logger.
def configure_logging(level: str = "INFO") -> Logger:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    return logging.getLogger("quizhub")
