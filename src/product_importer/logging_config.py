"""Logging configuration for the application."""

import logging
from typing import Dict, Optional
from rich.console import Console
from rich.logging import RichHandler
from .config import settings


def setup_logging(console: Optional[Console] = None) -> None:
    """Set up application logging with rich formatting."""

    # Configure root logger
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper()),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[
            RichHandler(
                console=console,  # Share the CLI console so progress bars stay intact
                show_path=False,
                markup=True,
                rich_tracebacks=True,
            )
        ],
        force=True,
    )

    # Set specific logger levels
    logger_levels: Dict[str, str] = {
        "httpx": "WARNING",
        "httpcore": "WARNING",
        "sqlalchemy.engine": "WARNING",
    }

    for logger_name, level in logger_levels.items():
        logging.getLogger(logger_name).setLevel(getattr(logging, level))


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for the given name."""
    return logging.getLogger(name)
