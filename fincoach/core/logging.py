"""
structlog setup for the notebook service.

Each process run writes to its own file, ``<log_dir>/fincoach_<stamp>.log``,
alongside the console. Debug mode renders events for humans; otherwise
every line is a JSON object so session and notebook ids stay searchable.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import structlog
from structlog.typing import Processor

from fincoach.core.config import settings

LOG_FILE_PATTERN = "fincoach_*.log"


def prune_run_logs(logs_dir: Path, keep: int) -> List[Path]:
    """Remove all but the ``keep`` newest run logs; returns what was removed."""
    runs = sorted(logs_dir.glob(LOG_FILE_PATTERN), key=lambda p: p.stat().st_mtime)
    stale = runs[: max(len(runs) - keep, 0)]
    for path in stale:
        path.unlink(missing_ok=True)
    return stale


def _renderers(debug: bool) -> List[Processor]:
    if debug:
        return [structlog.dev.ConsoleRenderer(colors=True)]
    return [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]


def _install_handlers(level: int, log_file: Path) -> None:
    root = logging.getLogger()
    for handler in list(root.handlers):
        handler.close()
        root.removeHandler(handler)

    root.setLevel(level)
    plain = logging.Formatter("%(message)s")
    for handler in (logging.StreamHandler(), logging.FileHandler(log_file, mode="w")):
        handler.setFormatter(plain)
        root.addHandler(handler)


def configure_logging(
    logs_dir: Optional[Path] = None,
    keep: Optional[int] = None,
    debug: Optional[bool] = None,
) -> Path:
    """
    Configure structlog and the stdlib root logger.

    Safe to call again (tests, reloads): existing root handlers are replaced.

    Args:
        logs_dir: Directory for run logs (defaults to settings.log_dir)
        keep: Run logs to retain, the new one included
        debug: Console rendering instead of JSON (defaults to settings.debug)

    Returns:
        Path of the log file opened for this run
    """
    logs_dir = logs_dir or settings.log_dir
    keep = keep or settings.log_files_to_keep
    debug = settings.debug if debug is None else debug

    logs_dir.mkdir(parents=True, exist_ok=True)
    prune_run_logs(logs_dir, keep - 1)
    log_file = logs_dir / f"fincoach_{datetime.now():%Y%m%d_%H%M%S}.log"

    level = logging.getLevelName(settings.log_level)
    _install_handlers(level, log_file)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            *_renderers(debug),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    return log_file


def bind_context(**kwargs) -> None:
    """Attach key/values (request_id, notebook_id...) to every later event in this context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
