"""Console logging configuration for command line entry points."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

from abcatalog.config.models import LoggingSettings

_HANDLER_NAME = "abcatalog-console"


def configure_logging(settings: LoggingSettings | None = None, *, verbose: bool = False) -> None:
    """Attach a rich console handler to the ``abcatalog`` logger.

    Calling this more than once replaces the previously installed handler
    instead of stacking a second one.

    Args:
        settings: Logging section of the effective configuration.
        verbose: Force DEBUG output regardless of the configured level.

    Raises:
        ValueError: If the configured level name is not a logging level.
    """
    settings = settings or LoggingSettings()
    level_name = "DEBUG" if verbose else settings.level.upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        raise ValueError(f"Unknown logging level: {settings.level}")

    logger = logging.getLogger("abcatalog")
    for handler in list(logger.handlers):
        if handler.get_name() == _HANDLER_NAME:
            logger.removeHandler(handler)

    handler = RichHandler(
        console=Console(stderr=True),
        rich_tracebacks=settings.rich_tracebacks,
        show_path=False,
    )
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(level)
