"""
Process-wide logging for the converge CLI.

``setup_logging`` runs once, from the CLI group callback; modules only
ever call ``logging.getLogger(__name__)``.  The console gets terser the
quieter the level: bare messages at WARNING, timestamps at INFO, the
emitting module and line at DEBUG.  CONVERGE_LOG_FILE adds a full-detail
file log at its own level (CONVERGE_LOG_FILE_LEVEL).
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

LOG_LEVEL_ENV_VAR = "CONVERGE_LOG_LEVEL"
LOG_FILE_ENV_VAR = "CONVERGE_LOG_FILE"
LOG_FILE_LEVEL_ENV_VAR = "CONVERGE_LOG_FILE_LEVEL"

_DETAILED = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d  %(message)s"

# (threshold, format, datefmt), most verbose first.
_CONSOLE_TIERS: tuple[tuple[int, str, str | None], ...] = (
    (logging.DEBUG, _DETAILED, "%H:%M:%S"),
    (logging.INFO, "%(asctime)s %(message)s", "%H:%M:%S"),
)


def resolve_level(debug: bool = False, verbose: bool = False, quiet: bool = False) -> str:
    """Console level: --debug, --verbose, --quiet, then $CONVERGE_LOG_LEVEL."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    return os.environ.get(LOG_LEVEL_ENV_VAR, "WARNING")


def console_formatter(level: int) -> logging.Formatter:
    for threshold, fmt, datefmt in _CONSOLE_TIERS:
        if level <= threshold:
            return logging.Formatter(fmt, datefmt=datefmt)
    return logging.Formatter("%(message)s")


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Replace the root logger's handlers with converge's.

    Args:
        level: Console level name; unknown names mean WARNING.
        log_file: Extra log file (default: $CONVERGE_LOG_FILE).
        log_file_level: Level for the file (default:
            $CONVERGE_LOG_FILE_LEVEL, then ``level``).
    """
    console_level = _parse_level(level)
    log_file = log_file or os.environ.get(LOG_FILE_ENV_VAR)
    log_file_level = log_file_level or os.environ.get(LOG_FILE_LEVEL_ENV_VAR)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(console_formatter(console_level))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    root_level = console_level

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        Path(log_file).expanduser().parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(Path(log_file).expanduser(), encoding="utf-8")
        handler.setLevel(file_level)
        handler.setFormatter(logging.Formatter(_DETAILED, datefmt="%Y-%m-%d %H:%M:%S"))
        root.addHandler(handler)
        root_level = min(root_level, file_level)

    # The root must pass anything either handler wants.
    root.setLevel(root_level)
    logging.raiseExceptions = False


def _parse_level(level: str | None) -> int:
    numeric = getattr(logging, (level or "").upper(), None)
    return numeric if isinstance(numeric, int) else logging.WARNING
