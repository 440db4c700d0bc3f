"""Central logging utilities for the FNOL intake core.

This module enforces a consistent logging configuration across the
code-base and provides a helper for retrieving module-scoped loggers.

Key Features
------------
1. configure_logging(): idempotent initialization of the root logger.
2. get_logger(name): typed helper that always returns a configured logger.
3. token_fingerprint(digest): short, log-safe form of an idempotency digest.

Raw idempotency tokens may carry caller identity data and must never be
logged; only the first characters of their digest are.
"""

from __future__ import annotations

import logging
from typing import Final

from beartype import beartype

__all__: Final = [
    "configure_logging",
    "get_logger",
    "token_fingerprint",
]

_DEFAULT_LOG_FORMAT: Final = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_is_configured: bool = False


@beartype
def configure_logging(
    *, level: int = logging.INFO, fmt: str = _DEFAULT_LOG_FORMAT
) -> None:
    """Configure the root logger exactly once.

    Calling this function multiple times is safe – configuration will only
    be applied on the first invocation.
    """
    global _is_configured
    if _is_configured:
        return

    logging.basicConfig(level=level, format=fmt)
    _is_configured = True


@beartype
def get_logger(name: str | None = None, *, level: int | None = None) -> logging.Logger:
    """Return a module-scoped logger that is guaranteed to be configured."""
    configure_logging()
    logger = logging.getLogger(name or "fnol_intake")
    if level is not None:
        logger.setLevel(level)
    return logger


@beartype
def token_fingerprint(digest: str) -> str:
    """Return the log-safe prefix of an idempotency key digest."""
    return f"{digest[:8]}..."
