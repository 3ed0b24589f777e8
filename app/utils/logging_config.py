"""
Logging setup for BarberBook.

Configures the root logger once per process. Modules obtain loggers with
logging.getLogger(__name__) (or get_logger) and Flask code may also use
current_app.logger, which propagates here.

Environment Variables:
    LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default INFO)
"""
import os
import sys
import logging

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'

_configured = False


def setup_logging(level: str = None) -> None:
    """Configure root logging (idempotent)."""
    global _configured
    if _configured:
        return

    level_name = (level or os.getenv('LOG_LEVEL', 'INFO')).upper()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root = logging.getLogger()
    root.setLevel(getattr(logging, level_name, logging.INFO))
    root.addHandler(handler)

    # Quiet noisy libraries
    logging.getLogger('urllib3').setLevel(logging.WARNING)
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Get a module logger."""
    return logging.getLogger(name)
