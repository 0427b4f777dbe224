"""OTLP log payload construction.

One builder serves every event kind: connectivity tests and API responses
carry token/cost counters, tool calls carry tool attributes. Both share
the resource attributes that identify the account (API key, cost
multiplier, organization, product).
"""

import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from gemini_metering.config.constants import (
    ATTR_API_KEY,
    ATTR_COST_MULTIPLIER,
    ATTR_EMAIL,
    ATTR_ORGANIZATION,
    ATTR_PRODUCT,
    DEFAULT_COST_MULTIPLIER,
    SERVICE_NAME,
    VERSION,
)
from gemini_metering.config.store import format_cost_multiplier
from gemini_metering.telemetry.errors import MissingCredentialError

CONNECTIVITY_TEST_MODEL = "cli-connectivity-test"


class EventKind(str, Enum):
    API_RESPONSE = "gemini_cli.api_response"
    TOOL_CALL = "tool.call"


_SCOPE_NAMES = {
    EventKind.API_RESPONSE: "gemini_cli",
    EventKind.TOOL_CALL: "tool_metering",
}


@dataclass
class EventFields:
    """Everything an event carries besides its session id and kind."""

    api_key: str = ""
    model: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_creation_tokens: int = 0
    cost_usd: float = 0.0
    duration_ms: int = 0
    email: str | None = None
    organization_name: str | None = None
    product_name: str | None = None
    cost_multiplier: float | None = None
    # Kind-specific log attributes, e.g. tool.id for tool calls
    attributes: dict[str, Any] = field(default_factory=dict)


_last_timestamp_ns = 0
_timestamp_lock = threading.Lock()


def next_timestamp_ns() -> int:
    """Wall-clock nanoseconds, strictly increasing across calls."""
    global _last_timestamp_ns
    with _timestamp_lock:
        _last_timestamp_ns = max(time.time_ns(), _last_timestamp_ns + 1)
        return _last_timestamp_ns


def otlp_value(value: Any) -> dict[str, Any]:
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return {"boolValue": value}
    if isinstance(value, int):
        return {"intValue": value}
    if isinstance(value, float):
        return {"doubleValue": value}
    return {"stringValue": str(value)}


def _attributes(pairs: dict[str, Any]) -> list[dict[str, Any]]:
    return [{"key": key, "value": otlp_value(value)} for key, value in pairs.items() if value is not None]


def build_payload(session_id: str, fields: EventFields,
                  kind: EventKind = EventKind.API_RESPONSE) -> dict[str, Any]:
    """Build an OTLP logs payload holding a single log record."""
    if not fields.api_key:
        raise MissingCredentialError("API key is required to build a telemetry payload")

    log_attrs: dict[str, Any] = {"session.id": session_id}
    if kind == EventKind.API_RESPONSE:
        # Counters go as strings, matching what Gemini CLI itself emits
        log_attrs.update({
            "model": fields.model or CONNECTIVITY_TEST_MODEL,
            "input_tokens": str(fields.input_tokens),
            "output_tokens": str(fields.output_tokens),
            "cache_read_tokens": str(fields.cache_read_tokens),
            "cache_creation_tokens": str(fields.cache_creation_tokens),
            "cost_usd": repr(float(fields.cost_usd)),
            "duration_ms": str(fields.duration_ms),
        })
    else:
        log_attrs["duration_ms"] = fields.duration_ms
    log_attrs.update(fields.attributes)
    if fields.email:
        log_attrs[ATTR_EMAIL] = fields.email

    multiplier = fields.cost_multiplier if fields.cost_multiplier is not None else DEFAULT_COST_MULTIPLIER
    resource_attrs: dict[str, Any] = {
        "service.name": SERVICE_NAME,
        ATTR_API_KEY: fields.api_key,
        ATTR_COST_MULTIPLIER: format_cost_multiplier(multiplier),
        ATTR_EMAIL: fields.email or None,
        ATTR_ORGANIZATION: fields.organization_name or None,
        ATTR_PRODUCT: fields.product_name or None,
    }

    return {
        "resourceLogs": [
            {
                "resource": {"attributes": _attributes(resource_attrs)},
                "scopeLogs": [
                    {
                        "scope": {"name": _SCOPE_NAMES[kind], "version": VERSION},
                        "logRecords": [
                            {
                                "timeUnixNano": str(next_timestamp_ns()),
                                "body": {"stringValue": kind.value},
                                "attributes": _attributes(log_attrs),
                            }
                        ],
                    }
                ],
            }
        ]
    }
