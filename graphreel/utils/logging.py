"""
Logging setup for the graphreel process.

Library modules only ever call ``logging.getLogger(__name__)``; handlers and
levels are decided here, once, by the entrypoint.
"""

from __future__ import annotations

import logging
import sys
from typing import Iterable, Optional, Union

DEFAULT_FORMAT = "[%(asctime)s] %(levelname)-8s %(name)s: %(message)s"
# uvicorn logs every request at INFO; replays can issue hundreds per second
NOISY_LOGGERS = ("uvicorn.access",)


def parse_level(name: Union[str, int]) -> int:
    if isinstance(name, int):
        return name
    level = logging.getLevelName(str(name).strip().upper())
    if not isinstance(level, int):
        raise ValueError(f"unknown log level '{name}'")
    return level


def configure_logging(
    level: Union[str, int] = logging.INFO,
    format: Optional[str] = None,
    quiet: Iterable[str] = NOISY_LOGGERS,
) -> None:
    """
    Attach a stdout handler to the root logger unless one is already present.

    The ``graphreel`` logger level is applied either way so ``--log-level``
    works under an embedding application's own logging config.
    """

    resolved = parse_level(level)
    logging.getLogger("graphreel").setLevel(resolved)
    for name in quiet:
        logging.getLogger(name).setLevel(max(resolved, logging.WARNING))

    if logging.getLogger().handlers:
        return

    logging.basicConfig(
        level=resolved,
        format=format or DEFAULT_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )
