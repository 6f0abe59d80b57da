# -*- coding: utf-8 -*-
"""Location: ./teamgate/observability.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Teamgate Contributors

Telemetry for the join request pipeline.

Events and exceptions are written as structured log records and attached to the
current OpenTelemetry span. Whatever SDK/exporter the deployment installs picks
them up; with only the API present the span calls are no-ops. The sink is
fire-and-forget: nothing here may raise into the pipeline.
"""

# Standard
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Mapping, Optional

# Third-Party
from opentelemetry import trace

# First-Party
from teamgate.services.logging_service import LoggingService
from teamgate.utils.correlation_id import get_correlation_id

logging_service = LoggingService()
logger = logging_service.get_logger(__name__)

tracer = trace.get_tracer("teamgate")

REDACTED = "******"
SENSITIVE_KEYS = {
    "justification",
    "person_mail",
    "requester_email",
    "requester_mail",
    "approver_addresses",
    "accepted",
    "to",
    "password",
    "secret",
    "token",
    "authorization",
}


def redact(data: Any) -> Any:
    """Recursively mask personal and secret values before they reach telemetry.

    Args:
        data: The data structure to mask (dict, list, or other)

    Returns:
        The data structure with sensitive values masked

    Examples:
        >>> redact({"team": "core", "person_mail": "a@example.com"})
        {'team': 'core', 'person_mail': '******'}
        >>> redact([{"token": "x"}, 3])
        [{'token': '******'}, 3]
    """
    if isinstance(data, Mapping):
        return {k: (REDACTED if str(k).lower() in SENSITIVE_KEYS else redact(v)) for k, v in data.items()}
    if isinstance(data, (list, tuple)):
        return [redact(i) for i in data]
    return data


def _span_attributes(properties: Mapping[str, Any]) -> Dict[str, Any]:
    """Flatten properties into OpenTelemetry-compatible attribute values.

    Args:
        properties: Redacted event properties

    Returns:
        Dict[str, Any]: Attributes with non-primitive values stringified

    Examples:
        >>> _span_attributes({"a": 1, "b": {"c": 2}, "d": None})
        {'a': 1, 'b': "{'c': 2}"}
    """
    attributes: Dict[str, Any] = {}
    for key, value in properties.items():
        if value is None:
            continue
        attributes[key] = value if isinstance(value, (str, bool, int, float)) else str(value)
    return attributes


class TelemetryClient:
    """Fire-and-forget telemetry sink.

    Examples:
        >>> client = TelemetryClient()
        >>> client.track_event("Example", {"team": "core"})
        >>> client.track_exception(ValueError("boom"), {"eventName": "ExampleFailure"})
    """

    def track_event(self, name: str, properties: Optional[Mapping[str, Any]] = None) -> None:
        """Record a named event.

        Args:
            name: Event name
            properties: Event properties; redacted before emission
        """
        try:
            props = redact(dict(properties or {}))
            props.setdefault("correlation_id", get_correlation_id())
            logger.info(f"Telemetry event {name}", extra={"event_name": name, "event_properties": props})
            trace.get_current_span().add_event(name, attributes=_span_attributes(props))
        except Exception as e:  # pragma: no cover - telemetry must never fail the caller
            logger.debug(f"Dropping telemetry event {name}: {e}")

    def track_exception(self, error: BaseException, properties: Optional[Mapping[str, Any]] = None) -> None:
        """Record an exception.

        Args:
            error: The exception to record
            properties: Context properties; redacted before emission
        """
        try:
            props = redact(dict(properties or {}))
            props.setdefault("correlation_id", get_correlation_id())
            logger.error(f"Telemetry exception {type(error).__name__}: {error}", extra={"event_name": props.get("eventName"), "event_properties": props})
            trace.get_current_span().record_exception(error, attributes=_span_attributes(props))
        except Exception as e:  # pragma: no cover - telemetry must never fail the caller
            logger.debug(f"Dropping telemetry exception {type(error).__name__}: {e}")


@contextmanager
def create_span(name: str, attributes: Optional[Dict[str, Any]] = None) -> Iterator[Any]:
    """Start a span as the current span for the duration of the block.

    Args:
        name: Span name
        attributes: Initial span attributes

    Yields:
        The span object

    Examples:
        >>> with create_span("example", {"team": "core"}) as span:
        ...     span is not None
        True
    """
    with tracer.start_as_current_span(name, attributes=_span_attributes(attributes or {})) as span:
        yield span
