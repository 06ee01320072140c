import logging
from typing import Any, Dict

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(settings: Dict[str, Any]) -> logging.Logger:
    """
    Attaches a single stream handler to the package logger. Debug output is
    only emitted when the debug_logging preference is on.
    """
    logger = logging.getLogger("jellycue")
    logger.setLevel(logging.DEBUG if settings.get("debug_logging") else logging.INFO)

    if not any(getattr(h, "_jellycue", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._jellycue = True
        logger.addHandler(handler)
    return logger
