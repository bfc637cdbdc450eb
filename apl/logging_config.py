"""Logging setup shared by the admin CLI and the serverless handlers."""

import logging
import os
import sys
from datetime import datetime
from pathlib import Path

ROOT_LOGGER = 'apl'


def setup_logging(level: int = logging.INFO, log_to_file: bool = True) -> logging.Logger:
    """
    Send 'apl.*' logs to stdout and, for CLI runs, to a timestamped file.

    Serverless handlers pass log_to_file=False since their filesystem is
    read-only. Files go to $APL_LOG_DIR (default ./logs).

    Returns:
        Configured 'apl' logger
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    logger.handlers = []

    if log_to_file:
        log_dir = Path(os.environ.get('APL_LOG_DIR', 'logs'))
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_dir / f'apl_{datetime.now().strftime("%Y%m%d_%H%M%S")}.log')
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S',
        ))
        logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter('%(levelname)s: %(name)s: %(message)s'))
    logger.addHandler(console_handler)

    return logger
