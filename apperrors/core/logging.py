from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:  # pragma: no cover
    from apperrors.core.errors import AppError


request_id_var: ContextVar[str] = ContextVar("request_id", default="-")


class _ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        # Ensure this always exists so our formatter never crashes.
        record.request_id = request_id_var.get("-")
        return True


def set_log_context(*, request_id: Optional[str] = None) -> None:
    if request_id is not None:
        request_id_var.set(request_id)


def setup_logging(level: str = "INFO") -> None:
    lvl = getattr(logging, level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(lvl)

    # Replace handlers to avoid duplicated logs under reload.
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(_ContextFilter())

    fmt = "%(asctime)s | %(levelname)s | %(name)s | %(message)s | request_id=%(request_id)s"
    handler.setFormatter(logging.Formatter(fmt))

    root.handlers = [handler]

    logging.getLogger("uvicorn.access").setLevel(max(lvl, logging.INFO))


def get_logger(name: str = "apperrors") -> logging.Logger:
    return logging.getLogger(name)


def log_app_error(logger: logging.Logger, err: "AppError", level: int = logging.ERROR) -> None:
    """Emit one record for ``err`` with its kind, status and context.

    The wrapped cause, if any, is attached as exc_info.
    """
    context = " ".join(f"{k}={v!r}" for k, v in err.context.items())
    logger.log(
        level,
        "%s | kind=%s status=%s %s",
        err.message,
        err.kind.value,
        err.status_code,
        context,
        exc_info=err.cause,
    )
