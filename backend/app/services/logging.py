from __future__ import annotations

import contextvars
import logging
import os
import sys
import uuid
from datetime import datetime, timezone
from typing import Any, Dict


# ---- Per-request trace id ----
_trace_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("trace_id", default="-")


def new_trace_id() -> str:
    """Short unique id for one request."""
    return uuid.uuid4().hex[:8]


def bind_trace_id(tid: str) -> None:
    _trace_id_var.set(tid)


def get_trace_id() -> str:
    """Current context's trace id, or '-' outside a request."""
    return _trace_id_var.get()


# ---- Key=Value formatter ----
class KeyValueFormatter(logging.Formatter):
    """
    One line of key=value pairs per record, e.g.
      ts=2026-03-01T08:15:02Z level=INFO logger=cache trace_id=3f9a0c1e msg=cache.sweep evicted=4
    Values containing spaces or '=' are double-quoted.
    """

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc)
        kv: Dict[str, Any] = {
            "ts": ts.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "level": record.levelname,
            "logger": record.name,
            "trace_id": getattr(record, "trace_id", get_trace_id()),
            "msg": record.getMessage(),
        }

        extra_kv = getattr(record, "kv", None)
        if isinstance(extra_kv, dict):
            kv.update(extra_kv)

        parts = []
        for k, v in kv.items():
            val = str(v)
            if " " in val or "=" in val:
                val = f"\"{val}\""
            parts.append(f"{k}={val}")
        line = " ".join(parts)
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


# ---- Logger factory & helper ----
def get_logger(name: str = "app") -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(KeyValueFormatter())
        logger.addHandler(handler)
        logger.propagate = False
    return logger


def log_kv(logger: logging.Logger, level: int, msg: str, **kv: Any) -> None:
    """
    Log `msg` with structured fields and the bound trace id:
        log_kv(LOG, logging.INFO, "leaderboard.loaded", store_id=sid, entries=12)
    """
    logger.log(level, msg, extra={"kv": kv, "trace_id": get_trace_id()})
