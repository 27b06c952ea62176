# stockwatch/shared/logging_setup.py
import os
import logging
from logging.handlers import RotatingFileHandler
from typing import Iterable

_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _build_handlers(service_name: str, log_level: int) -> list:
    """Console handler always; rotating file handler when LOG_DIR is writable."""
    formatter = logging.Formatter(_FORMAT, datefmt=_DATEFMT)
    handlers = []

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    handlers.append(console_handler)

    log_directory = os.environ.get("LOG_DIR", "/app/logs")
    try:
        os.makedirs(log_directory, exist_ok=True)
        log_file = os.path.join(log_directory, f"{service_name.replace('-', '_')}.log")
        file_handler = RotatingFileHandler(log_file, maxBytes=5 * 1024 * 1024, backupCount=5)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)
    except OSError:
        # read-only filesystem or no permissions: console only
        pass

    return handlers


def setup_logging(app, service_name: str, module_names: Iterable[str] = ()):
    """Configures comprehensive logging for a Flask service."""
    log_level_str = os.environ.get("LOG_LEVEL", "INFO").upper()
    log_level = getattr(logging, log_level_str, logging.INFO)

    handlers = _build_handlers(service_name, log_level)

    app.logger.setLevel(log_level)
    app.logger.propagate = False

    # Clear existing handlers to avoid duplication
    for h in list(app.logger.handlers):
        app.logger.removeHandler(h)
    for h in handlers:
        app.logger.addHandler(h)

    # prevent werkzeug from duplicating to root/stdout
    werk = logging.getLogger("werkzeug")
    werk.propagate = False
    for h in list(werk.handlers):
        if isinstance(h, logging.StreamHandler):
            werk.removeHandler(h)

    # Module loggers that should emit through the same handlers
    for name in module_names:
        module_logger = logging.getLogger(name)
        module_logger.setLevel(log_level)
        module_logger.propagate = False
        for h in list(module_logger.handlers):
            module_logger.removeHandler(h)
        for h in handlers:
            module_logger.addHandler(h)

    app.logger.info(f"{service_name} logging initialized.")
    return handlers
