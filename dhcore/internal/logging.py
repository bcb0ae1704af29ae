import logging
import logging.handlers
import os
import sys
from pathlib import Path

import structlog

from dhcore.internal import paths

_LOGGING_CONFIGURED = False

_SHARED_PROCESSORS = [
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.TimeStamper(fmt="iso"),
]


def _configure_structlog() -> None:
    # Route structlog through stdlib logging. Handlers are the application's
    # business: until setup_logging() runs, events follow whatever the host
    # process configured for the "dhcore" loggers.
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            *_SHARED_PROCESSORS,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,  # Key to integrate with stdlib handlers
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def _formatter(json_output: bool, colors: bool = True) -> logging.Formatter:
    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=colors)
    return structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=_SHARED_PROCESSORS,
    )


def setup_logging(log_level_name: str = "INFO", log_file_path: Path | None = None, console_output: bool = False):
    """
    Configure logging for an application embedding dhcore.
    - Uses structlog for structured logging.
    - Writes JSON logs to a rotating file if log_file_path is provided
      (console-style text unless the file name ends with '.json').
    - Can optionally send human-readable logs to stderr, leaving stdout to
      the host application.
    - Log level can be set with the DHCORE_LOG_LEVEL environment variable or function argument.
    """
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return  # Prevent re-configuring logging

    effective_log_level_name = os.environ.get("DHCORE_LOG_LEVEL", log_level_name).upper()
    log_level = getattr(logging, effective_log_level_name, logging.INFO)

    handlers: list[logging.Handler] = []

    if log_file_path:
        log_file_path = Path(log_file_path)
        log_file_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file_path,
            maxBytes=5 * 1024 * 1024,  # 5 MB
            backupCount=5,
        )
        file_handler.setFormatter(_formatter(json_output=log_file_path.name.endswith(".json"), colors=False))
        handlers.append(file_handler)

    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(_formatter(json_output=False))
        handlers.append(console_handler)

    # If no handlers, create a NullHandler to prevent "No handlers could be found for logger" messages
    if not handlers:
        handlers.append(logging.NullHandler())

    # Mute noisy loggers
    for noisy in ("httpx", "httpcore", "botocore", "boto3", "s3transfer", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    _configure_structlog()

    root = logging.getLogger()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(log_level)
    _LOGGING_CONFIGURED = True


def configure_default_logging(console_output: bool = False) -> Path:
    """
    JSON logs under the app data directory, e.g. ~/.dhcore/logs/dhcore.log.json.
    """
    log_file = paths.get_log_file()
    setup_logging(log_file_path=log_file, console_output=console_output)
    return log_file


def get_logger(name: str | None = None):
    # All modules can now just call get_logger()
    return structlog.get_logger(name)


_configure_structlog()
