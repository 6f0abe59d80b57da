# -*- coding: utf-8 -*-
"""Location: ./teamgate/services/logging_service.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Teamgate Contributors

Logging Service.
Console text logging, plus JSON file logging when ``LOG_TO_FILE`` is set. JSON
records carry the correlation ID of the join request being handled and, inside
the ``team_join.submit`` span, the OpenTelemetry trace ids, so one submission
can be followed across its provider calls.
"""

# Standard
from datetime import datetime, timezone
import logging
from logging.handlers import RotatingFileHandler
import os
from pathlib import Path
import socket
from typing import Any, Dict, List, Optional

# Third-Party
from opentelemetry import trace
from pythonjsonlogger import json as jsonlogger

# First-Party
from teamgate.config import settings
from teamgate.utils.correlation_id import get_correlation_id

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
JSON_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
UVICORN_LOGGERS = ("uvicorn", "uvicorn.access", "uvicorn.error", "uvicorn.asgi")


class CorrelationIdJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter adding host, correlation and trace fields.

    Examples:
        >>> record = logging.LogRecord("teamgate", logging.INFO, __file__, 1, "hello", None, None)
        >>> fields = {}
        >>> CorrelationIdJsonFormatter(JSON_FORMAT).add_fields(fields, record, {})
        >>> sorted(k for k in fields if k in ("hostname", "pid", "correlation_id"))
        ['hostname', 'pid']
    """

    hostname = socket.gethostname()

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        """Add the teamgate fields to a JSON record.

        Args:
            log_record: Fields that will be serialized
            record: Source record
            message_dict: Fields parsed from the message
        """
        super().add_fields(log_record, record, message_dict)
        log_record["@timestamp"] = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z")
        log_record["hostname"] = self.hostname
        log_record["pid"] = record.process

        correlation_id = get_correlation_id()
        if correlation_id:
            log_record["correlation_id"] = correlation_id

        span = trace.get_current_span()
        if not span.is_recording():
            return
        span_context = span.get_span_context()
        if span_context.is_valid:
            log_record["trace_id"] = format(span_context.trace_id, "032x")
            log_record["span_id"] = format(span_context.span_id, "016x")


def build_file_handler(log_file: str, log_folder: Optional[str] = None) -> logging.Handler:
    """JSON file handler, rotating when ``LOG_ROTATION_ENABLED`` is set.

    Args:
        log_file: File name
        log_folder: Directory for the file, created when missing

    Returns:
        logging.Handler: The handler
    """
    path = Path(log_file)
    if log_folder:
        Path(log_folder).mkdir(parents=True, exist_ok=True)
        path = Path(log_folder) / log_file

    if settings.log_rotation_enabled:
        handler: logging.Handler = RotatingFileHandler(path, mode=settings.log_filemode, maxBytes=settings.log_max_size_mb * 1024 * 1024, backupCount=settings.log_backup_count)
    else:
        handler = logging.FileHandler(path, mode=settings.log_filemode)
    handler.setFormatter(CorrelationIdJsonFormatter(JSON_FORMAT))
    return handler


class LoggingService:
    """Owns the root handlers and hands out module loggers.

    Every module creates its own instance at import time and calls
    ``get_logger(__name__)``; only the application lifespan calls
    ``initialize()`` and ``shutdown()``.

    Examples:
        >>> LoggingService().get_logger("teamgate.example").name
        'teamgate.example'
    """

    def __init__(self) -> None:
        """Take the level from ``LOG_LEVEL``, falling back to INFO."""
        level = settings.log_level.upper()
        self.level = level if level in VALID_LEVELS else "INFO"
        self._loggers: Dict[str, logging.Logger] = {}
        self._handlers: List[logging.Handler] = []

    async def initialize(self) -> None:
        """Replace the root handlers with the console and optional JSON file handlers."""
        root = logging.getLogger()
        root.handlers.clear()
        root.setLevel(self.level)

        console = logging.StreamHandler()
        console.setFormatter(logging.Formatter(TEXT_FORMAT))
        self._attach(root, console)

        if settings.log_to_file and settings.log_file:
            try:
                self._attach(root, build_file_handler(settings.log_file, settings.log_folder))
                root.info(f"JSON logs written to {os.path.join(settings.log_folder or '.', settings.log_file)}")
            except OSError as e:
                root.warning(f"File logging unavailable, console only: {e}")

        self._route_uvicorn_loggers()
        root.info(f"Logging initialized at {self.level}")

    async def shutdown(self) -> None:
        """Detach and close the handlers installed by ``initialize()``."""
        root = logging.getLogger()
        for handler in self._handlers:
            root.removeHandler(handler)
            handler.close()
        self._handlers.clear()

    def get_logger(self, name: str) -> logging.Logger:
        """Logger for a module, at the service level and propagating to the root handlers.

        Args:
            name: Logger name, usually ``__name__``

        Returns:
            logging.Logger: The logger
        """
        logger = self._loggers.get(name)
        if logger is None:
            logger = logging.getLogger(name)
            logger.setLevel(self.level)
            logger.propagate = True
            self._loggers[name] = logger
        return logger

    def set_level(self, level: str) -> None:
        """Change the level of every logger handed out so far.

        Args:
            level: Level name, any case

        Raises:
            ValueError: If the level name is unknown

        Examples:
            >>> service = LoggingService()
            >>> service.set_level("debug")
            >>> service.get_logger("teamgate.level").level == logging.DEBUG
            True
        """
        level = level.upper()
        if level not in VALID_LEVELS:
            raise ValueError(f"Invalid log level: {level}")
        self.level = level
        for logger in self._loggers.values():
            logger.setLevel(level)

    def configure_uvicorn_after_startup(self) -> None:
        """Route uvicorn loggers through the root handlers again; uvicorn installs its own at startup."""
        self._route_uvicorn_loggers()

    def _attach(self, root: logging.Logger, handler: logging.Handler) -> None:
        root.addHandler(handler)
        self._handlers.append(handler)

    def _route_uvicorn_loggers(self) -> None:
        for name in UVICORN_LOGGERS:
            uvicorn_logger = logging.getLogger(name)
            uvicorn_logger.handlers.clear()
            uvicorn_logger.propagate = True
            uvicorn_logger.setLevel(self.level)
            self._loggers[name] = uvicorn_logger
