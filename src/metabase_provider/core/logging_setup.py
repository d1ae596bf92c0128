"""
Central logging for metabase-provider.

- Console handler: INFO..CRITICAL (no DEBUG)
- Timed rotated file handler: DEBUG (logs/app.log, daily rotation)
- Action-based file handler: DEBUG (logs/YYYY-MM-DD/<action>_<run_id>.log)
- Secret redaction: masks session tokens/API keys/passwords in msg and args
- UTC timestamps in ISO-8601

Modules log through `logging.getLogger(__name__)`; records that carry no
run context are rendered with "-" placeholders.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import re
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

BASE_LOGGER = "metabase_provider"

_CONTEXT_FIELDS = ("run_id", "action", "resource")


class MaskSecretsFilter(logging.Filter):
    """
    Redact common secrets (session tokens, API keys, passwords) from log records.
    """

    _patterns = [
        re.compile(r"(X-Metabase-Session['\"]?\s*[=:]\s*['\"]?)([A-Za-z0-9._-]+)", re.IGNORECASE),
        re.compile(r"(X-API-KEY['\"]?\s*[=:]\s*['\"]?)([A-Za-z0-9._-]+)", re.IGNORECASE),
        re.compile(r"(api[_-]?key['\"]?\s*[=:]\s*['\"]?)([A-Za-z0-9._-]+)", re.IGNORECASE),
        re.compile(r"(password['\"]?\s*[=:]\s*['\"]?)([^,'\"\s}]+)", re.IGNORECASE),
    ]

    @staticmethod
    def _mask(text: str) -> str:
        masked = text
        for pat in MaskSecretsFilter._patterns:
            masked = pat.sub(r"\1***REDACTED***", masked)
        return masked

    def filter(self, record: logging.LogRecord) -> bool:
        if record.args:
            if isinstance(record.args, dict):
                record.args = {k: self._mask(str(v)) for k, v in record.args.items()}
            else:
                record.args = tuple(
                    self._mask(a) if isinstance(a, str) else a for a in record.args
                )
        if isinstance(record.msg, str):
            record.msg = self._mask(record.msg)
        return True


class ContextDefaultsFilter(logging.Filter):
    """Fill in run context fields missing from plain module-level records."""

    def filter(self, record: logging.LogRecord) -> bool:
        for name in _CONTEXT_FIELDS:
            if getattr(record, name, None) is None:
                setattr(record, name, "-")
        return True


def _ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def _utc_formatter(fmt: str) -> logging.Formatter:
    f = logging.Formatter(fmt=fmt, datefmt="%Y-%m-%dT%H:%M:%SZ")
    f.converter = time.gmtime  # type: ignore[attr-defined]
    return f


def _prepare_handler(handler: logging.Handler, level: str, formatter: logging.Formatter,
                     filters: tuple) -> logging.Handler:
    handler.setLevel(getattr(logging, level.upper(), logging.DEBUG))
    handler.setFormatter(formatter)
    for flt in filters:
        handler.addFilter(flt)
    return handler


def _ensure_single_console_handler(
    base_logger: logging.Logger,
    *,
    console_level: str,
    formatter: logging.Formatter,
    filters: tuple,
) -> None:
    """
    Make sure there is exactly ONE StreamHandler bound to sys.stderr
    (pytest may close/replace stdio between tests; also avoid duplicates).
    """
    for h in list(base_logger.handlers):
        if type(h) is logging.StreamHandler:
            base_logger.removeHandler(h)
            h.close()

    sh = logging.StreamHandler(stream=sys.stderr)
    base_logger.addHandler(_prepare_handler(sh, console_level, formatter, filters))


def _ensure_app_file_handler(
    base_logger: logging.Logger,
    *,
    base_dir: str,
    file_level: str,
    formatter: logging.Formatter,
    filters: tuple,
) -> None:
    """
    Ensure a single TimedRotatingFileHandler points to <base_dir>/app.log
    for the CURRENT working directory; handlers left over from a previous
    configuration with another path are replaced.
    """
    _ensure_dir(base_dir)
    desired = os.path.abspath(os.path.join(base_dir, "app.log"))
    Path(desired).touch(exist_ok=True)

    for h in list(base_logger.handlers):
        if isinstance(h, logging.handlers.TimedRotatingFileHandler):
            if os.path.abspath(getattr(h, "baseFilename", "")) != desired:
                base_logger.removeHandler(h)
                h.close()

    if not any(
        isinstance(h, logging.handlers.TimedRotatingFileHandler)
        and os.path.abspath(getattr(h, "baseFilename", "")) == desired
        for h in base_logger.handlers
    ):
        rh = logging.handlers.TimedRotatingFileHandler(
            desired,
            when="midnight",
            backupCount=14,
            encoding="utf-8",
            utc=True,
            delay=False,
        )
        base_logger.addHandler(_prepare_handler(rh, file_level, formatter, filters))


def build_logger(
    *,
    name: str = BASE_LOGGER,
    run_id: str,
    action: str,
    base_dir: str = "logs",
    console_level: str = "INFO",
    file_level: str = "DEBUG",
    extra: Optional[Dict[str, Any]] = None,
) -> logging.LoggerAdapter:
    """
    Configure and return a LoggerAdapter.

    Design:
      - A base logger `<name>` holds console + rotating file handlers.
      - A child logger `<name>.<action>.<run_id>` holds a per-run file handler.
      - Records propagate to base logger so they appear in all sinks.
    """
    filters = (ContextDefaultsFilter(), MaskSecretsFilter())

    fmt = (
        "%(asctime)s | %(levelname)-8s | %(name)s | "
        "run=%(run_id)s action=%(action)s resource=%(resource)s | "
        "%(message)s"
    )
    formatter = _utc_formatter(fmt)

    base = logging.getLogger(name)
    base.setLevel(logging.DEBUG)

    _ensure_single_console_handler(base, console_level=console_level, formatter=formatter, filters=filters)
    _ensure_app_file_handler(base, base_dir=base_dir, file_level=file_level, formatter=formatter, filters=filters)

    child_name = f"{name}.{action}.{run_id}"
    child = logging.getLogger(child_name)
    child.setLevel(logging.DEBUG)
    child.propagate = True

    if not getattr(child, "_mbprov_action_configured", False):
        today = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        dated_dir = os.path.join(base_dir, today)
        _ensure_dir(dated_dir)

        action_file = os.path.join(dated_dir, f"{action}_{run_id}.log")
        Path(action_file).touch(exist_ok=True)
        fh = logging.FileHandler(action_file, encoding="utf-8", delay=False)
        child.addHandler(_prepare_handler(fh, file_level, formatter, filters))
        child._mbprov_action_configured = True  # type: ignore[attr-defined]

    adapter = logging.LoggerAdapter(
        child,
        {
            "run_id": run_id,
            "action": action,
            "resource": (extra or {}).get("resource"),
        },
    )
    adapter.debug("Logger initialised")
    return adapter
