"""
Logging for LargeScaleMeshing

All loggers hang below the "LargeScaleMeshing" logger, one per component
("LargeScaleMeshing.Planning", "LargeScaleMeshing.Dispatcher", ...), so a
single call to configure_root_logger at the start of a run sets the level
and the outputs of the whole pipeline.

Example:
    >>> configure_root_logger(verbose=True, log_file='out/meshing.log')
    >>> logger = get_logger('Planning')
    >>> logger.info("Split root into 2 blocks")
    [2026-10-19 10:15:30] [INFO] [LargeScaleMeshing.Planning] Split root into 2 blocks
"""

import logging
import sys
from pathlib import Path
from typing import Optional

ROOT_LOGGER_NAME = "LargeScaleMeshing"
BANNER_WIDTH = 70

_FORMAT = '[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s'
_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def setup_logger(
    name: str = ROOT_LOGGER_NAME,
    level: str = "INFO",
    log_file: Optional[str] = None,
    console: bool = True,
    force: bool = False
) -> logging.Logger:
    """
    Attach console and/or file handlers to a logger.

    An already configured logger is returned untouched unless `force`.
    The log file is appended to, so successive runs over one output
    directory share it.
    """
    logger = logging.getLogger(name)

    if logger.handlers and not force:
        return logger

    logger.setLevel(getattr(logging, level.upper()))
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(_FORMAT, datefmt=_DATE_FORMAT)

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, mode='a')
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_logger(component: str) -> logging.Logger:
    """Logger of a pipeline component, e.g. get_logger('Dispatcher')"""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{component}")


def configure_root_logger(verbose: bool = False, log_file: Optional[str] = None) -> logging.Logger:
    """
    Configure the whole meshing pipeline for one run.

    Args:
        verbose: DEBUG level (per-iteration search and per-block details) instead of INFO
        log_file: Optional copy of the console output
    """
    return setup_logger(
        name=ROOT_LOGGER_NAME,
        level="DEBUG" if verbose else "INFO",
        log_file=log_file,
        console=True,
        force=True
    )


def log_banner(logger: logging.Logger, title: str):
    """Section title framed by rules, as printed at the start and end of a run"""
    logger.info("=" * BANNER_WIDTH)
    logger.info(title)
    logger.info("=" * BANNER_WIDTH)
