"""Session logging for LEDGERX runs.

Every CLI invocation that calls :func:`setup_logging` gets its own file,
``ledgerx_<YYYYmmdd_HHMMSS>_<session>.log``, under ``~/.ledgerx/logs`` (or
``$LEDGERX_LOG_DIR``), and a ``ledgerx.log`` symlink to the newest one.  All
library modules log through ``logging.getLogger(__name__)``; their records
reach the session file via the ``ledgerx`` package logger.

Verbosity: DEBUG adds segment text and raw oracle responses; INFO carries
stage boundaries and per-segment dispatch; WARNING marks retries, skipped
segments and reconciliation drift.
"""

from __future__ import annotations

import logging
import os
import sys
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

PACKAGE_LOGGER = "ledgerx"
LATEST_LINK = "ledgerx.log"
DEFAULT_LOG_DIR = Path.home() / ".ledgerx" / "logs"

_FIELDS = "%(asctime)s | %(levelname)-8s | %(session_id)s | %(name)s"
CONSOLE_FORMAT = _FIELDS + " | %(message)s"
FILE_FORMAT = _FIELDS + ":%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass
class _Session:
    session_id: str
    log_file: Path


_session: Optional[_Session] = None


class SessionIdFilter(logging.Filter):
    """Stamp ``record.session_id`` on everything passing the package logger."""

    def __init__(self, session_id: str):
        super().__init__()
        self.session_id = session_id

    def filter(self, record: logging.LogRecord) -> bool:
        record.session_id = self.session_id  # type: ignore[attr-defined]
        return True


class SessionFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "session_id"):
            record.session_id = get_session_id() or "-"  # type: ignore[attr-defined]
        return super().format(record)


def get_log_directory() -> Path:
    override = os.getenv("LEDGERX_LOG_DIR")
    return Path(override) if override else DEFAULT_LOG_DIR


def _reset(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)
    for flt in list(logger.filters):
        logger.removeFilter(flt)


def _handler(handler: logging.Handler, level: int, fmt: str) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(SessionFormatter(fmt, DATE_FORMAT))
    return handler


def _point_latest_link(log_dir: Path, log_file: Path) -> None:
    link = log_dir / LATEST_LINK
    try:
        if link.is_symlink() or link.exists():
            link.unlink()
        link.symlink_to(log_file.name)
    except OSError:
        # No symlink privilege (Windows); the session file is still written.
        logging.getLogger(__name__).debug("could not update %s", link)


def setup_logging(
    level: Optional[str] = None,
    log_dir: Optional[Path] = None,
    console_output: bool = False,
    quiet: bool = False,
) -> Path:
    """Start a logging session and return its log file.

    Args:
        level: Level name; defaults to ``$LEDGERX_LOG_LEVEL`` or ``INFO``.
        log_dir: Where to write; defaults to :func:`get_log_directory`.
        console_output: Mirror records to stderr.
        quiet: Never write to stderr, even with *console_output*.

    Calling it again replaces the previous session's handlers.
    """
    global _session

    level_name = (level or os.getenv("LEDGERX_LOG_LEVEL") or "INFO").upper()
    numeric = getattr(logging, level_name, logging.INFO)

    directory = Path(log_dir) if log_dir is not None else get_log_directory()
    directory.mkdir(parents=True, exist_ok=True)

    session_id = uuid.uuid4().hex[:6]
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = directory / f"ledgerx_{stamp}_{session_id}.log"
    _session = _Session(session_id=session_id, log_file=log_file)

    pkg = logging.getLogger(PACKAGE_LOGGER)
    _reset(pkg)
    pkg.setLevel(numeric)
    pkg.propagate = False
    pkg.addFilter(SessionIdFilter(session_id))
    pkg.addHandler(_handler(logging.FileHandler(log_file, encoding="utf-8"), numeric, FILE_FORMAT))
    if console_output and not quiet:
        pkg.addHandler(_handler(logging.StreamHandler(sys.stderr), numeric, CONSOLE_FORMAT))

    _point_latest_link(directory, log_file)
    pkg.info("session %s started, level %s, file %s", session_id, level_name, log_file)
    return log_file


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``ledgerx`` namespace; no handlers are installed."""
    if name == PACKAGE_LOGGER or name.startswith(PACKAGE_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{PACKAGE_LOGGER}.{name}")


def get_current_log_file() -> Optional[Path]:
    return _session.log_file if _session else None


def get_session_id() -> Optional[str]:
    return _session.session_id if _session else None


# Structured records -------------------------------------------------------


def _clip(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return f"{text[:limit]}... [TRUNCATED, {len(text)} chars total]"


def log_pipeline_start(
    logger: logging.Logger,
    document: str,
    page_count: int,
    segment_count: int,
    model: str,
) -> None:
    logger.info(
        "pipeline start: document=%s pages=%d segments=%d model=%s",
        document, page_count, segment_count, model,
    )


def log_segment_dispatch(
    logger: logging.Logger,
    segment_index: int,
    page_start: int,
    page_end: int,
    attempt: int,
) -> None:
    suffix = f" (attempt {attempt})" if attempt > 1 else ""
    logger.info("[Segment %d] pages %d-%d%s", segment_index, page_start, page_end, suffix)


def log_segment_failure(
    logger: logging.Logger,
    segment_index: int,
    error: str,
    attempts: int,
) -> None:
    logger.warning("[Segment %d] after %d attempt(s): %s", segment_index, attempts, error)


def log_oracle_response(
    logger: logging.Logger,
    segment_index: int,
    response_content: str,
    truncate_at: int = 2000,
) -> None:
    """Raw oracle output at DEBUG, clipped to *truncate_at* characters."""
    logger.debug("oracle response, segment %d:\n%s", segment_index, _clip(response_content, truncate_at))


def log_text_content(
    logger: logging.Logger,
    source: str,
    text_content: str,
    truncate_at: int = 1000,
) -> None:
    logger.debug(
        "text of %s (%d chars):\n%s", source, len(text_content), _clip(text_content, truncate_at)
    )


def log_pipeline_complete(
    logger: logging.Logger,
    status: str,
    total_duration: Optional[float] = None,
    identities: Optional[int] = None,
) -> None:
    parts = [f"pipeline {status}"]
    if total_duration is not None:
        parts.append(f"duration={total_duration:.2f}s")
    if identities is not None:
        parts.append(f"identities={identities}")
    logger.info(" ".join(parts))
