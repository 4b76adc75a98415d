"""Loguru configuration for SocialFeed.

Every record emitted while ``SocialService.handle`` runs carries the request
id, the caller and the operation name in ``record["extra"]``. The dispatcher
binds them with :func:`request_context`, which wraps
``logger.contextualize`` so the values follow the request into awaited
fan-out tasks and disappear when the call returns.

Example:
    >>> from socialfeed.logging import logger, request_context
    >>> with request_context("req-1", user_id="alice", operation="get_feed"):
    ...     logger.info("Building feed")
"""

import json
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from loguru import logger as loguru_logger

from socialfeed.config import settings

TEXT_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> | "
    "{extra[request_tag]}<level>{message}</level>"
)


def _request_tag(extra: dict[str, Any]) -> str:
    operation = extra.get("operation")
    if not operation:
        return ""
    return f"[{operation} {extra.get('user_id') or '-'}] "


def _to_json(record: dict[str, Any]) -> str:
    """One JSON line per record; request fields are promoted to the top level."""
    extra = {k: v for k, v in record["extra"].items() if k != "request_tag"}
    line = {
        "time": record["time"].isoformat(),
        "level": record["level"].name,
        "message": record["message"],
        "logger": record["name"],
        **extra,
    }
    if exc := record["exception"]:
        line["error"] = {
            "type": exc.type.__name__ if exc.type else None,
            "message": str(exc.value),
        }
    return json.dumps(line, default=str)


def _patch(record: dict[str, Any]) -> None:
    record["extra"]["request_tag"] = _request_tag(record["extra"])
    record["extra"]["serialized"] = _to_json(record)


def _json_format(record: dict[str, Any]) -> str:
    return "{extra[serialized]}\n"


def setup_logging(
    level: str = "INFO",
    json_logs: bool = False,
    log_file: Path | None = None,
) -> Any:
    """Replace all sinks with one stdout sink and an optional rotating file.

    Args:
        level: Minimum level
        json_logs: JSON lines instead of coloured text
        log_file: Extra sink, always written as JSON lines

    Returns:
        The configured logger
    """
    loguru_logger.configure(patcher=_patch)
    loguru_logger.remove()

    if json_logs:
        loguru_logger.add(sys.stdout, level=level, format=_json_format)
    else:
        loguru_logger.add(sys.stdout, level=level, format=TEXT_FORMAT)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        loguru_logger.add(
            log_file,
            level=level,
            format=_json_format,
            rotation="50 MB",
            retention=5,
            enqueue=True,
        )

    return loguru_logger


@contextmanager
def request_context(
    request_id: str,
    user_id: str | None = None,
    operation: str | None = None,
) -> Iterator[None]:
    """Bind the request fields to every record logged inside the block."""
    with loguru_logger.contextualize(request_id=request_id, user_id=user_id, operation=operation):
        yield


logger = setup_logging(
    level=settings.log_level,
    json_logs=settings.log_json,
    log_file=settings.data_dir / "socialfeed.log" if settings.log_to_file else None,
)

__all__ = ["logger", "request_context", "setup_logging"]
