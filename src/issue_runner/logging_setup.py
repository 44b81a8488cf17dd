"""Logging configuration for a run.

Modules log through the standard library (``logging.getLogger(__name__)``)
with context passed as ``extra``. This module installs two handlers on the
root logger:
- Console: plain text lines for humans
- File: one JSON object per line in ``<output_dir>/issue-runner.log``,
  rendered by structlog so the ``extra`` context becomes JSON fields
"""

import logging
from pathlib import Path
from typing import Optional

import structlog


CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

LOG_FILE_NAME = "issue-runner.log"

# Chatty third-party loggers kept at WARNING unless running verbose
_NOISY_LOGGERS = ("httpx", "httpcore", "openai", "urllib3")


def _json_formatter() -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.ExtraAdder(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
        ],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.JSONRenderer(),
        ],
    )


def configure_logging(
    level: str = "info",
    output_dir: Optional[Path] = None,
    verbose: bool = False,
) -> Optional[Path]:
    """Configure root logging for the run.

    Args:
        level: Level name from configuration (debug, info, warning, error).
        output_dir: Directory for the JSON log file. No file is written
            when None.
        verbose: Force DEBUG regardless of ``level``.

    Returns:
        Path of the JSON log file, or None.
    """
    resolved = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO)

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(resolved)

    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    root.addHandler(console)

    log_path = None
    if output_dir is not None:
        output_dir.mkdir(parents=True, exist_ok=True)
        log_path = output_dir / LOG_FILE_NAME
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(_json_formatter())
        root.addHandler(file_handler)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if verbose else logging.WARNING)

    return log_path
