from __future__ import annotations

import contextvars
import logging
import sys
from contextlib import contextmanager
from typing import Iterator

# Carries the analysis run id across awaits and task-group children.
_run_id_ctx: contextvars.ContextVar[str] = contextvars.ContextVar("run_id", default="-")


def get_run_id() -> str:
    return _run_id_ctx.get()


@contextmanager
def bind_run_id(run_id: str) -> Iterator[str]:
    """
    Attach `run_id` to every log record emitted inside the block.

    Tasks spawned inside the block inherit the value.
    """
    token = _run_id_ctx.set(run_id)
    try:
        yield run_id
    finally:
        _run_id_ctx.reset(token)


class RunIdFilter(logging.Filter):
    """Inject run_id from contextvars into log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = get_run_id()
        return True


def configure_logging(level: str = "INFO") -> None:
    """
    Configure root logging with one stdout handler.

    Called once on application startup. Safe to call repeatedly.
    """
    root = logging.getLogger()
    root.setLevel(level.upper())

    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level.upper())
    handler.addFilter(RunIdFilter())
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s | %(levelname)s | %(name)s | run_id=%(run_id)s | %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S%z",
        )
    )
    root.addHandler(handler)
