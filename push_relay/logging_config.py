"""Structured JSON logging for Cloud Logging compatibility."""

from __future__ import annotations

import logging
import sys

from pythonjsonlogger import jsonlogger


def configure_logging(service_name: str, env: str, level: str = "INFO") -> None:
    """Install a JSON stdout handler on the root logger, tagging every record
    with the service name and deployment environment. ``level`` is a standard
    level name such as ``"DEBUG"``."""
    handler = logging.StreamHandler(sys.stdout)
    formatter = jsonlogger.JsonFormatter(
        fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
        rename_fields={"asctime": "timestamp", "levelname": "severity"},
    )
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())

    # httpx logs every request at INFO; one line per device is too noisy
    logging.getLogger("httpx").setLevel(logging.WARNING)

    old_factory = logging.getLogRecordFactory()

    def record_factory(*args, **kwargs):  # type: ignore[no-untyped-def]
        record = old_factory(*args, **kwargs)
        record.service = service_name  # type: ignore[attr-defined]
        record.environment = env  # type: ignore[attr-defined]
        return record

    logging.setLogRecordFactory(record_factory)
