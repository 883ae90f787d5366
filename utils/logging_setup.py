"""Structured logging for the profiling agent.

Every record goes to stderr as one JSON object. When ``CLOUDWATCH_LOG_GROUP``
is set, records are also shipped to CloudWatch Logs in batches of
``CLOUDWATCH_BATCH_SIZE`` (flushed early on shutdown).
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import time
from typing import Any

import boto3
from pythonjsonlogger import jsonlogger

DEFAULT_SERVICE = "memprof-agent"
DEFAULT_BATCH_SIZE = 20
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(service)s %(message)s"
# Config spells WARNING as "warn".
_LEVEL_ALIASES = {"warn": "WARNING"}

_LOGGING_CONFIGURED = False


class _ServiceFilter(logging.Filter):
    def __init__(self, service: str | None):
        super().__init__()
        self._service = service or DEFAULT_SERVICE

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "service"):
            record.service = self._service
        return True


class CloudWatchHandler(logging.handlers.BufferingHandler):
    """Buffer formatted records and ship them to CloudWatch Logs in one call."""

    def __init__(
        self,
        log_group: str,
        log_stream: str,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        region_name: str | None = None,
        endpoint_url: str | None = None,
    ) -> None:
        super().__init__(max(1, batch_size))
        self.log_group = log_group
        self.log_stream = log_stream
        self._client = boto3.client("logs", region_name=region_name, endpoint_url=endpoint_url)
        self._sequence_token: str | None = None
        self._create_if_missing(self._client.create_log_group, logGroupName=log_group)
        self._create_if_missing(
            self._client.create_log_stream, logGroupName=log_group, logStreamName=log_stream
        )

    def _create_if_missing(self, create: Any, **kwargs: str) -> None:
        try:
            create(**kwargs)
        except self._client.exceptions.ResourceAlreadyExistsException:
            pass

    def flush(self) -> None:
        self.acquire()
        try:
            records, self.buffer = self.buffer, []
            if records:
                self._put(records)
        finally:
            self.release()

    def _put(self, records: list[logging.LogRecord]) -> None:
        try:
            events = [
                {"timestamp": int(record.created * 1000), "message": self.format(record)}
                for record in records
            ]
            kwargs: dict[str, Any] = {
                "logGroupName": self.log_group,
                "logStreamName": self.log_stream,
                "logEvents": events,
            }
            if self._sequence_token is not None:
                kwargs["sequenceToken"] = self._sequence_token
            response = self._client.put_log_events(**kwargs)
            self._sequence_token = response.get("nextSequenceToken")
        except Exception:
            self.handleError(records[-1])


def resolve_level(level: str | None) -> str:
    raw = (level or os.getenv("LOG_LEVEL", "INFO")).strip().lower()
    return _LEVEL_ALIASES.get(raw, raw.upper())


def _cloudwatch_from_env(service_name: str | None) -> CloudWatchHandler | None:
    log_group = os.getenv("CLOUDWATCH_LOG_GROUP")
    if not log_group:
        return None
    log_stream = os.getenv(
        "CLOUDWATCH_LOG_STREAM",
        f"{service_name or DEFAULT_SERVICE}-{int(time.time())}",
    )
    return CloudWatchHandler(
        log_group,
        log_stream,
        batch_size=int(os.getenv("CLOUDWATCH_BATCH_SIZE", str(DEFAULT_BATCH_SIZE))),
        region_name=os.getenv("AWS_REGION"),
        endpoint_url=os.getenv("CLOUDWATCH_ENDPOINT"),
    )


def configure_logging(service_name: str | None = None, level: str | None = None) -> None:
    """Install JSON logging on the root logger once per process.

    ``level`` accepts the config spelling (``debug``/``info``/``warn``/``error``)
    and falls back to ``LOG_LEVEL``.
    """
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return

    root = logging.getLogger()
    root.setLevel(resolve_level(level))

    formatter = jsonlogger.JsonFormatter(LOG_FORMAT)
    service_filter = _ServiceFilter(service_name)
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    cloudwatch = _cloudwatch_from_env(service_name)
    if cloudwatch is not None:
        handlers.append(cloudwatch)

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(service_filter)
        root.addHandler(handler)

    _LOGGING_CONFIGURED = True


def reset_logging() -> None:
    """Flush and detach every root handler (tests, shutdown)."""
    global _LOGGING_CONFIGURED
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        if isinstance(handler, CloudWatchHandler):
            handler.close()
    _LOGGING_CONFIGURED = False
