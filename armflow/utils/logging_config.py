# Copyright 2025-2026 Dimensional Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""structlog setup shared by every armflow module.

Each module calls ``logger = setup_logger()`` at import time. Records go to a
compact console line on stdout and to a rotating JSON-lines file.
"""

from collections.abc import Mapping
from datetime import datetime
import inspect
import logging
import logging.handlers
import os
from pathlib import Path
import sys
import tempfile
import traceback
from types import TracebackType
from typing import Any

import structlog
from structlog.processors import CallsiteParameter, CallsiteParameterAdder

from armflow.constants import ARMFLOW_LOG_DIR, ARMFLOW_PROJECT_ROOT

_LOG_FILE_PATH: Path | None = None


def _get_log_directory() -> Path:
    if (ARMFLOW_PROJECT_ROOT / ".git").exists():
        log_dir = ARMFLOW_LOG_DIR
    else:
        xdg_state_home = os.getenv("XDG_STATE_HOME")
        if xdg_state_home:
            log_dir = Path(xdg_state_home) / "armflow" / "logs"
        else:
            log_dir = Path.home() / ".local" / "state" / "armflow" / "logs"

    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except (PermissionError, OSError):
        log_dir = Path(tempfile.gettempdir()) / "armflow" / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)

    return log_dir


def get_log_file_path() -> Path:
    """Path of the JSON-lines file for this process (configures structlog on first use)."""
    return _configure_structlog()


def _configure_structlog() -> Path:
    global _LOG_FILE_PATH

    if _LOG_FILE_PATH:
        return _LOG_FILE_PATH

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    _LOG_FILE_PATH = _get_log_directory() / f"armflow_{timestamp}_{os.getpid()}.jsonl"

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            CallsiteParameterAdder(
                parameters=[
                    CallsiteParameter.FUNC_NAME,
                    CallsiteParameter.LINENO,
                ]
            ),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return _LOG_FILE_PATH


_CONSOLE_PATH_WIDTH = 34
_CONSOLE_USE_COLORS = hasattr(sys.stdout, "isatty") and sys.stdout.isatty()

_LEVEL_COLORS = {
    "dbg": "\033[1;36m",
    "inf": "\033[1;32m",
    "war": "\033[1;33m",
    "err": "\033[1;31m",
    "cri": "\033[1;31m",
}
_RESET = "\033[0m"
_DIM = "\033[2m"

# Callsite and exception bookkeeping that only belongs in the JSON file
_CONSOLE_HIDDEN_KEYS = (
    "func_name",
    "lineno",
    "exception",
    "exc_info",
    "exception_type",
    "exception_message",
    "traceback_lines",
    "_record",
    "_from_structlog",
)


def _console_renderer(logger: Any, method_name: str, event_dict: Mapping[str, Any]) -> str:
    """Render ``HH:MM:SS.mmm [lvl][module path] event key=value ...``."""
    fields = dict(event_dict)

    raw_ts = fields.pop("timestamp", "")
    try:
        dt = datetime.fromisoformat(str(raw_ts).replace("Z", "+00:00")) if raw_ts else datetime.now()
        time_str = dt.strftime("%H:%M:%S") + f".{dt.microsecond // 1000:03d}"
    except ValueError:
        time_str = str(raw_ts)[:12]

    level = str(fields.pop("level", "???"))[:3].lower()
    where = str(fields.pop("logger", ""))[-_CONSOLE_PATH_WIDTH:]
    event = fields.pop("event", "")

    for key in _CONSOLE_HIDDEN_KEYS:
        fields.pop(key, None)

    extras = " ".join(f"{k}={v}" for k, v in sorted(fields.items()))

    if _CONSOLE_USE_COLORS:
        line = (
            f"{_DIM}{time_str}{_RESET} {_LEVEL_COLORS.get(level, '')}[{level}]{_RESET}"
            f"{_DIM}[{where:<{_CONSOLE_PATH_WIDTH}s}]{_RESET} {event}"
        )
    else:
        line = f"{time_str} [{level}][{where:<{_CONSOLE_PATH_WIDTH}s}] {event}"

    return f"{line} {extras}" if extras else line


def setup_logger(name: str | None = None, *, level: int | None = None) -> Any:
    """Set up a structured logger using structlog.

    Args:
        name: Logger name. Defaults to the caller's file path relative to the
            project root.
        level: The logging level. Defaults to ``$ARMFLOW_LOG_LEVEL`` or INFO.

    Returns:
        A configured structlog logger instance.
    """
    if name is None:
        name = inspect.stack()[1].filename
        try:
            name = str(Path(name).relative_to(ARMFLOW_PROJECT_ROOT))
        except (ValueError, TypeError):
            pass

    log_file_path = _configure_structlog()

    if level is None:
        level = getattr(logging, os.getenv("ARMFLOW_LOG_LEVEL", "INFO").upper(), logging.INFO)

    stdlib_logger = logging.getLogger(name)
    if stdlib_logger.hasHandlers():
        stdlib_logger.handlers.clear()
    stdlib_logger.setLevel(level)
    stdlib_logger.propagate = False

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(structlog.stdlib.ProcessorFormatter(processor=_console_renderer))
    stdlib_logger.addHandler(console_handler)

    file_handler = logging.handlers.RotatingFileHandler(
        log_file_path,
        mode="a",
        maxBytes=10 * 1024 * 1024,  # 10MiB
        backupCount=10,
        encoding="utf-8",
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(processor=structlog.processors.JSONRenderer())
    )
    stdlib_logger.addHandler(file_handler)

    return structlog.get_logger(name)


def setup_exception_handler() -> None:
    """Route uncaught exceptions through the JSON log before printing them."""

    def handle_exception(
        exc_type: type[BaseException],
        exc_value: BaseException,
        exc_traceback: TracebackType | None,
    ) -> None:
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_traceback)
            return

        setup_logger("armflow.uncaught").error(
            "Uncaught exception occurred",
            exc_info=(exc_type, exc_value, exc_traceback),
            exception_type=exc_type.__name__,
            exception_message=str(exc_value),
            traceback_lines=traceback.format_exception(exc_type, exc_value, exc_traceback),
        )

        from rich.console import Console
        from rich.traceback import Traceback

        Console(stderr=True).print(Traceback.from_exception(exc_type, exc_value, exc_traceback))

    sys.excepthook = handle_exception
