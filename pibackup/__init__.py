"""
pi-backup: directory backups to object storage.

Archives configured directories into deterministic tar.gz snapshots,
uploads only the ones whose content changed, and restores them on demand.
"""

import os
import logging
from logging.handlers import RotatingFileHandler


__version__ = '1.0.0'


def configure_logging(verbose: bool = False, log_file: str = None):
    """
    Configure application logging.

    Args:
        verbose: Log at DEBUG level instead of INFO
        log_file: Optional path of a rotating log file
    """
    log_level = logging.DEBUG if verbose else logging.INFO

    # Console handler (journald adds its own timestamps)
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter('%(levelname)s: %(message)s'))

    handlers = [console_handler]

    # File handler
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10485760,  # 10MB
            backupCount=10
        )
        file_handler.setLevel(log_level)
        file_formatter = logging.Formatter(
            '[%(asctime)s] %(levelname)s [%(name)s.%(funcName)s:%(lineno)d] %(message)s'
        )
        file_handler.setFormatter(file_formatter)
        handlers.append(file_handler)

    # Configure root logger
    logging.basicConfig(level=log_level, handlers=handlers)

    logging.getLogger(__name__).debug(
        f"Logging configured (level: {logging.getLevelName(log_level)})"
    )
