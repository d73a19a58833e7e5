import logging
import time
from pathlib import Path

LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"


def parse_level(level: str) -> int:
    try:
        return LEVELS[level.strip().lower()]
    except KeyError:
        raise ValueError(f"invalid log level: {level!r}") from None


def setup_logging(level: str, log_dir: Path) -> Path:
    """
    Send the hammock loggers to a file named after the current time under
    log_dir. Nothing is written to the terminal, which belongs to the UI.
    """
    lvl = parse_level(level)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / f"{time.strftime('%Y-%m-%d-%H%M%S')}.log"

    handler = logging.FileHandler(log_path, encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    logger = logging.getLogger("hammock")
    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()
    logger.addHandler(handler)
    logger.setLevel(lvl)
    logger.propagate = False
    return log_path
