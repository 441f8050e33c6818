"""
Structured logging for the assessment service (structlog).

Events are named, not worded: ``log.info("oracle_run_started", run_id=...)``.
Production renders JSON lines; DEBUG renders coloured console output.
Request and session ids travel in contextvars so every event of a turn can
be correlated.

Each process start writes its own ``assessment_<timestamp>.log`` under
settings.log_dir. Conversation text is never logged in full; string fields
named in PREVIEW_FIELDS are cut to settings.log_preview_chars.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, List, MutableMapping, Optional

import structlog
from structlog.typing import Processor

from assessment.core.config import settings

LOG_FILE_PREFIX = "assessment_"

# Event fields that may carry user or oracle text
PREVIEW_FIELDS = frozenset({"user_message", "raw_preview", "content"})


def _cull_old_logs(logs_dir: Path, keep: int) -> None:
    """Keep only the ``keep`` most recent log files."""
    log_files = sorted(
        logs_dir.glob(f"{LOG_FILE_PREFIX}*.log"),
        key=lambda p: p.stat().st_mtime,
        reverse=True,
    )
    for old_file in log_files[keep:]:
        old_file.unlink(missing_ok=True)


def shorten_conversation_text(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """structlog processor: trim conversation text to a short preview."""
    limit = settings.log_preview_chars
    for key in PREVIEW_FIELDS & event_dict.keys():
        value = event_dict[key]
        if isinstance(value, str) and len(value) > limit:
            event_dict[key] = value[:limit] + f"... [{len(value)} chars]"
    return event_dict


def configure_logging(log_dir: Optional[Path] = None) -> Path:
    """Configure structlog and stdlib handlers. Call once at startup.

    Args:
        log_dir: Override for settings.log_dir

    Returns:
        Path of the log file opened for this process
    """
    logs_dir = Path(log_dir or settings.log_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)
    _cull_old_logs(logs_dir, keep=settings.log_files_to_keep - 1)

    log_file = logs_dir / f"{LOG_FILE_PREFIX}{datetime.now():%Y%m%d_%H%M%S}.log"
    level = getattr(logging, settings.log_level)

    processors: List[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        shorten_conversation_text,
    ]
    if settings.debug:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        processors += [
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)
    root_logger.setLevel(level)

    formatter = logging.Formatter("%(message)s")
    for handler in (logging.StreamHandler(), logging.FileHandler(log_file, mode="w")):
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    return log_file


def get_logger(name: str) -> structlog.BoundLogger:
    """Module logger: ``log = get_logger(__name__)``."""
    return structlog.get_logger(name)


def bind_context(**kwargs) -> None:
    """Bind request-scoped fields (request_id, session_id) to later events."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Drop all request-scoped fields; called when a request finishes."""
    structlog.contextvars.clear_contextvars()
