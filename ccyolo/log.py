"""Optional side log for the hook.

The hook's stdout carries the protocol response only, so diagnostics go to
~/.ccyolo/ccyolo.log when logging is enabled in config, and nowhere
otherwise. Secrets are masked before anything is written.
"""

import logging
from pathlib import Path

from ccyolo.normalize import redact

LOG_FORMAT = "%(asctime)s %(session)s%(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

ROOT_LOGGER = "ccyolo"


class RedactingFormatter(logging.Formatter):
    """Formatter that masks passwords, tokens and API keys."""

    def __init__(self, session_tag: str = ""):
        super().__init__(LOG_FORMAT, DATE_FORMAT)
        self.session_tag = session_tag

    def format(self, record: logging.LogRecord) -> str:
        record.session = self.session_tag
        return redact(super().format(record))


def setup_hook_logging(enabled: bool, path: Path, session_id: str = "", debug: bool = False) -> logging.Logger:
    """Route the ``ccyolo`` logger to ``path`` or silence it.

    Never raises: an unwritable log file just means no log.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = False

    if not enabled:
        logger.addHandler(logging.NullHandler())
        return logger

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, encoding="utf-8")
    except OSError:
        logger.addHandler(logging.NullHandler())
        return logger

    session_tag = f"[{session_id[:8]}] " if session_id else ""
    handler.setFormatter(RedactingFormatter(session_tag))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    return logger


def setup_cli_logging(verbose: bool = False):
    """Configure logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
