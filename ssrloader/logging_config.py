"""
Logging configuration for the SSR dev server.

Every component logs through ``logging.getLogger("ssrloader.*")``.
:func:`configure_logging` installs one console handler on the
``ssrloader`` logger, either human-readable timestamped text or JSON
lines via :class:`StructuredFormatter`::

    Application code
        │
        ▼
    logging.getLogger("ssrloader.*")
        │
        ├──► StreamHandler + Formatter (text, default)
        │
        └──► StructuredLogHandler (JSON, --log-format json)

Usage::

    from ssrloader.logging_config import configure_logging

    configure_logging(config)  # Call once at startup
"""

from __future__ import annotations

import logging
import os
import sys
from typing import TYPE_CHECKING, Optional

from ssrloader.__version__ import __version__
from ssrloader.structured_logging import StructuredFormatter, StructuredLogHandler

if TYPE_CHECKING:
    from ssrloader.app_config import ServerConfig


DEFAULT_LOG_LEVEL = logging.INFO
LOG_FORMAT_TEXT = "%(asctime)s [%(levelname)s] %(name)s : %(message)s"
LOG_FORMAT_DEBUG = "%(asctime)s [%(levelname)s] %(filename)s:%(lineno)s : %(message)s"

_CONFIGURED = False


def configure_logging(
    config: Optional[ServerConfig] = None,
    *,
    force_json: Optional[bool] = None,
    force_text: bool = False,
    stream=None,
) -> logging.Logger:
    """Configure the ``ssrloader`` logger.

    Subsequent calls are no-ops until :func:`reset_logging` is called.

    Args:
        config: Server configuration; ``log_level``, ``log_format`` and
            ``debug`` are honoured.
        force_json: Explicitly enable or disable JSON output (default:
            ``config.log_format`` or the ``SSR_LOG_FORMAT`` env var).
        force_text: Force plain-text output (overrides JSON).
        stream: Output stream, ``sys.stderr`` by default.

    Returns:
        The ``ssrloader`` logger.
    """
    global _CONFIGURED
    if _CONFIGURED:
        return logging.getLogger("ssrloader")

    debug = bool(config and config.debug)
    if debug:
        level = logging.DEBUG
    elif config is not None:
        level = logging.getLevelName(config.log_level.upper())
        if not isinstance(level, int):
            level = DEFAULT_LOG_LEVEL
    else:
        level = DEFAULT_LOG_LEVEL

    env_format = os.environ.get("SSR_LOG_FORMAT", "").lower()
    if force_text:
        use_json = False
    elif force_json is not None:
        use_json = force_json
    elif config is not None:
        use_json = config.log_format == "json"
    else:
        use_json = env_format == "json"

    root = logging.getLogger("ssrloader")
    root.setLevel(logging.DEBUG)  # handlers filter further
    root.handlers.clear()
    root.propagate = False

    if use_json:
        console: logging.Handler = StructuredLogHandler(
            stream=stream or sys.stderr,
            formatter=StructuredFormatter(
                include_caller=debug,
                extra_fields={"version": __version__},
            ),
        )
    else:
        console = logging.StreamHandler(stream or sys.stderr)
        console.setFormatter(logging.Formatter(LOG_FORMAT_DEBUG if debug else LOG_FORMAT_TEXT))
    console.setLevel(level)
    root.addHandler(console)

    _CONFIGURED = True

    root.debug(
        "Logging configured",
        extra={
            "log_format": "json" if use_json else "text",
            "log_level": logging.getLevelName(level),
        },
    )
    return root


def reset_logging() -> None:
    """Reset the logging configuration (for testing)."""
    global _CONFIGURED
    _CONFIGURED = False
    root = logging.getLogger("ssrloader")
    root.handlers.clear()
    root.propagate = True
    root.setLevel(logging.NOTSET)
