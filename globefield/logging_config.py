"""
Logging Configuration
Routes the engine's structlog events through the standard logging module.
"""
import logging
import sys

import structlog


def configure_logging(level: int = logging.INFO, json: bool = False) -> None:
    """
    Configures structlog and the 'globefield' stdlib logger.

    Args:
        level: Logging level (e.g. logging.DEBUG, logging.INFO)
        json: Render events as JSON lines instead of key=value console output.
    """
    logger = logging.getLogger("globefield")
    logger.setLevel(level)

    # Avoid duplicate handlers when configured twice
    if logger.hasHandlers():
        logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.propagate = False

    renderer = structlog.processors.JSONRenderer() if json else structlog.dev.ConsoleRenderer(colors=False)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="%H:%M:%S"),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    structlog.get_logger("globefield").info("logging_configured", level=logging.getLevelName(level))
