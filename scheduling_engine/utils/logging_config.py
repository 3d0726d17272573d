"""
Centralized Logging Configuration

Provides consistent logging setup for the engine and its worker.
When running in containers (Docker/Kubernetes/Fly.io), timestamps are omitted
from the Python log formatter since container runtimes add their own timestamps.

Usage:
    from scheduling_engine.utils.logging_config import configure_logging
    configure_logging()
"""
import os
import sys
import logging

# Detect container environment
IS_CONTAINERIZED = bool(
    os.environ.get('FLY_APP_NAME') or  # Fly.io
    os.environ.get('KUBERNETES_SERVICE_HOST') or  # Kubernetes
    os.path.exists('/.dockerenv')  # Docker
)

CONTAINER_FORMAT = "[%(name)s] %(levelname)s: %(message)s"
LOCAL_FORMAT = "[%(asctime)s] [%(name)s] %(levelname)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

NOISY_LOGGERS = ('httpx', 'httpcore', 'hpack', 'apscheduler', 'postgrest')


def _resolve_level(level) -> int:
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        return resolved if isinstance(resolved, int) else logging.INFO
    return level


def configure_logging(level=None, force: bool = False) -> None:
    """
    Configure logging for the engine.

    Args:
        level: Logging level, int or name (default: LOG_LEVEL env or INFO)
        force: Force reconfiguration even if already configured
    """
    root_logger = logging.getLogger()

    if root_logger.handlers and not force:
        return

    if force:
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

    level = _resolve_level(level if level is not None else os.getenv('LOG_LEVEL', logging.INFO))

    log_format = CONTAINER_FORMAT if IS_CONTAINERIZED else LOCAL_FORMAT
    datefmt = None if IS_CONTAINERIZED else DATE_FORMAT

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(log_format, datefmt=datefmt))

    root_logger.setLevel(level)
    root_logger.addHandler(handler)

    # Suppress noisy third-party loggers
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
