"""
Component Logger — console plus a per-component file under LOG_DIR.
"""
import logging
import os

from app.config import get_settings

_FORMAT = "%(asctime)s - %(name)s - %(levelname)s: %(message)s"


def get_logger(component: str, filename: str | None = None) -> logging.Logger:
    """Return the logger for a component, attaching handlers on first use.

    Args:
        component: Logger name, e.g. "ANALYZER" or "SCHEDULER".
        filename: Log file under LOG_DIR; defaults to "<component>.log".
    """
    logger = logging.getLogger(f"railx.{component}")
    if logger.handlers:
        return logger

    logger.setLevel(logging.INFO)
    logger.propagate = False
    formatter = logging.Formatter(_FORMAT)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    logger.addHandler(console)

    settings = get_settings()
    try:
        os.makedirs(settings.LOG_DIR, exist_ok=True)
        file_handler = logging.FileHandler(
            os.path.join(settings.LOG_DIR, filename or f"{component.lower()}.log"),
            encoding="utf-8",
        )
    except OSError as e:
        logger.warning(f"File logging disabled: {e}")
    else:
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
