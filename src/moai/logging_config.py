"""
Logging setup for the CLI and web entry points.

Library modules only call logging.getLogger(__name__); handlers are
installed once by whichever entry point owns the process.
"""

import logging

from rich.logging import RichHandler

# Libraries that log every HTTP request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "hpack", "postgrest", "gotrue")


def configure_logging(level: str = "INFO", rich: bool = True) -> None:
    """Install a root handler and quiet down noisy libraries."""
    if rich:
        handler: logging.Handler = RichHandler(rich_tracebacks=True, show_path=False)
        fmt = "%(message)s"
    else:
        handler = logging.StreamHandler()
        fmt = "%(asctime)s [%(name)s] %(levelname)s %(message)s"

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=fmt,
        datefmt="%H:%M:%S",
        handlers=[handler],
        force=True,
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
