"""structlog setup shared by the CLI and the Streamlit host."""

import logging
import sys

import structlog

from meteogram.config import Settings


def _renderer(settings: Settings, level: int) -> structlog.typing.Processor:
    if settings.log_format == "console" or level == logging.DEBUG:
        return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    return structlog.processors.JSONRenderer(sort_keys=True)


def init_logging(settings: Settings) -> structlog.BoundLogger:
    """Route structlog through stdlib logging on stderr.

    stdout stays free for the CLI's HTML output. Level and renderer come from
    ``METEOGRAM_LOG_LEVEL`` and ``METEOGRAM_LOG_FORMAT``.
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            _renderer(settings, level),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger("meteogram")
