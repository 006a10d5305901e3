"""
Centralized logging for the multi-pair decision engine.

Every component writes to its own file under ``<log_dir>/<Module_Folder>/``.
Files are human-readable unless a logger is created with
``use_json_formatter=True``; structured fields passed through ``extra=``
(pair, trade_id, action, reason, wait_ms, ...) are kept on JSON lines.

Deep-dive tracing (``log_data_entry`` / ``log_data_processing`` /
``log_data_output``) follows one opportunity through the pipeline as JSON
lines and is only active when ``app.json: logging.deep_dive`` is true.

Usage:
    from bot_logging.logger_manager import setup_module_logger, create_module_log_directories

    create_module_log_directories()
    logger = setup_module_logger('pacing', 'pacing.log', module_folder='Pacing_Logs')
"""

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from config.loader import get_config, get_env_var
from shared.serialization_utils import DecisionEncoder

_PROJECT_ROOT = Path(__file__).parent.parent

_logging_cfg: dict[str, Any] = get_config().get_app_config().get("logging", {})

_LOG_DIR = get_env_var("DECISION_ENGINE_LOG_DIR", "", str) or str(
    _PROJECT_ROOT / _logging_cfg.get("log_dir", "logs")
)
_DEEP_DIVE_ENABLED: bool = bool(_logging_cfg.get("deep_dive", False))
_MODULE_FOLDERS: dict[str, str] = _logging_cfg.get(
    "module_folders",
    {
        "decision_engine": "Decision_Engine_Logs",
        "pacing": "Pacing_Logs",
        "ledger": "Ledger_Logs",
        "exchange_minimums": "Exchange_Minimum_Logs",
        "main": "Main_Logs",
        "deep_dive": "Deep_Dive_Logs",
    },
)

_STRUCTURED_FIELDS = (
    "trace_id",
    "pair",
    "trade_id",
    "action",
    "reason",
    "wait_ms",
    "position_size",
    "confidence",
    "error",
)


# ============================================================================
# FORMATTERS
# ============================================================================


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with decision fields lifted from ``extra``."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "where": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        entry.update(
            {key: getattr(record, key) for key in _STRUCTURED_FIELDS if hasattr(record, key)}
        )
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, cls=DecisionEncoder)


class HumanReadableFormatter(logging.Formatter):
    """Pipe-separated single-line format; appends ``pair=`` when present."""

    FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-18s | %(message)s"
    DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

    def __init__(self) -> None:
        super().__init__(fmt=self.FORMAT, datefmt=self.DATE_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        pair = getattr(record, "pair", None)
        return f"{line} [pair={pair}]" if pair else line


# ============================================================================
# LOGGER FACTORY
# ============================================================================

_loggers: dict[str, logging.Logger] = {}


def create_module_log_directories() -> dict[str, str]:
    """Create ``<log_dir>/<folder>`` for every configured module folder."""
    paths = {key: os.path.join(_LOG_DIR, folder) for key, folder in _MODULE_FOLDERS.items()}
    for path in paths.values():
        os.makedirs(path, exist_ok=True)
    return paths


def _file_handler(path: str, level: int, as_json: bool) -> logging.FileHandler:
    os.makedirs(os.path.dirname(path), exist_ok=True)
    handler = logging.FileHandler(path, mode="a", encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter() if as_json else HumanReadableFormatter())
    return handler


def setup_module_logger(
    name: str,
    log_file: str,
    level: int = logging.INFO,
    module_folder: str | None = None,
    use_json_formatter: bool = False,
) -> logging.Logger:
    """
    Return the file-backed logger for one engine component.

    Args:
        name: Logger name, unique per component.
        log_file: File name, placed inside ``module_folder`` when given.
        level: Logging level (default INFO).
        module_folder: Subfolder of the log directory (e.g. 'Pacing_Logs').
        use_json_formatter: Write JSON lines instead of the human format.

    Repeated calls with the same arguments return the same logger without
    adding handlers.
    """
    key = f"{name}:{module_folder}:{log_file}"
    cached = _loggers.get(key)
    if cached is not None:
        return cached

    logger = logging.getLogger(name)
    logger.setLevel(level)
    if not logger.handlers:
        parts = [_LOG_DIR, module_folder, log_file] if module_folder else [_LOG_DIR, log_file]
        logger.addHandler(_file_handler(os.path.join(*parts), level, use_json_formatter))
        logger.propagate = False

    _loggers[key] = logger
    return logger


def get_deep_dive_logger() -> logging.Logger:
    return setup_module_logger(
        "deep_dive",
        "deep_dive_trace.log",
        module_folder=_MODULE_FOLDERS.get("deep_dive", "Deep_Dive_Logs"),
        use_json_formatter=True,
    )


# ============================================================================
# DEEP-DIVE TRACE
# ============================================================================


def _trace(event: str, trace_id: str, source_module: str, what: str, **data: Any) -> None:
    if not _DEEP_DIVE_ENABLED:
        return
    record = {
        "event": event,
        "trace_id": trace_id,
        "source_module": source_module,
        "what": what,
        **data,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    get_deep_dive_logger().info(json.dumps(record, cls=DecisionEncoder))


def log_data_entry(trace_id: str, source_module: str, what: str, data: Any) -> None:
    """An input arriving at the engine (the opportunity)."""
    _trace("DATA_ENTRY", trace_id, source_module, what, data=data)


def log_data_processing(
    trace_id: str,
    source_module: str,
    what: str,
    input_data: Any,
    output_data: Any,
) -> None:
    """An intermediate computation (market assessment -> adaptive target)."""
    _trace(
        "DATA_PROCESSING",
        trace_id,
        source_module,
        what,
        input_data=input_data,
        output_data=output_data,
    )


def log_data_output(trace_id: str, source_module: str, what: str, data: Any) -> None:
    """The final decision, with its full trace."""
    _trace("DATA_OUTPUT", trace_id, source_module, what, data=data)
