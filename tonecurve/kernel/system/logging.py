import logging
import sys


def setup_logging(level: int | str = logging.INFO) -> logging.Logger:
    """
    Sets up the logging configuration for the curve engine.
    Calling it again only changes the level.
    """
    logger = logging.getLogger("tonecurve")
    logger.setLevel(level)

    # Prevent duplicate handlers if called multiple times
    if logger.handlers:
        for existing in logger.handlers:
            existing.setLevel(level)
        return logger

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)

    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)-8s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    return logger


def get_logger(name: str | None = None) -> logging.Logger:
    """
    Helper to get a sub-logger for a specific module.
    """
    if name:
        if name == "tonecurve" or name.startswith("tonecurve."):
            return logging.getLogger(name)
        return logging.getLogger(f"tonecurve.{name}")
    return logging.getLogger("tonecurve")
