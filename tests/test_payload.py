"""Tests for gemini_metering/telemetry/payload.py — OTLP payload builder."""

import pytest

from gemini_metering.telemetry.errors import MissingCredentialError
from gemini_metering.telemetry.payload import (
    EventFields,
    EventKind,
    build_payload,
    next_timestamp_ns,
    otlp_value,
)


def _resource_attrs(payload) -> dict:
    attrs = payload["resourceLogs"][0]["resource"]["attributes"]
    return {a["key"]: a["value"] for a in attrs}


def _record(payload) -> dict:
    return payload["resourceLogs"][0]["scopeLogs"][0]["logRecords"][0]


def _log_attrs(payload) -> dict:
    return {a["key"]: a["value"] for a in _record(payload)["attributes"]}


class TestBuildPayload:

    def test_requires_api_key(self):
        with pytest.raises(MissingCredentialError):
            build_payload("s-1", EventFields())

    def test_resource_attributes(self):
        payload = build_payload("s-1", EventFields(
            api_key="hak_t_abc123xyz0",
            organization_name="Acme",
            product_name="Platform",
            cost_multiplier=0.8,
        ))
        attrs = _resource_attrs(payload)
        assert attrs["service.name"] == {"stringValue": "gemini-cli"}
        assert attrs["revenium.api_key"] == {"stringValue": "hak_t_abc123xyz0"}
        assert attrs["cost_multiplier"] == {"stringValue": "0.8"}
        assert attrs["organization.name"] == {"stringValue": "Acme"}
        assert attrs["product.name"] == {"stringValue": "Platform"}

    def test_defaults_cost_multiplier_and_omits_empty(self):
        attrs = _resource_attrs(build_payload("s-1", EventFields(api_key="hak_t_abc123xyz0")))
        assert attrs["cost_multiplier"] == {"stringValue": "1"}
        assert "organization.name" not in attrs
        assert "product.name" not in attrs
        assert "user.email" not in attrs

    def test_api_response_log_attributes(self):
        payload = build_payload("s-1", EventFields(
            api_key="hak_t_abc123xyz0",
            input_tokens=12,
            output_tokens=34,
            email="dev@example.com",
        ))
        record = _record(payload)
        attrs = _log_attrs(payload)
        assert record["body"] == {"stringValue": "gemini_cli.api_response"}
        assert attrs["session.id"] == {"stringValue": "s-1"}
        assert attrs["model"] == {"stringValue": "cli-connectivity-test"}
        assert attrs["input_tokens"] == {"stringValue": "12"}
        assert attrs["output_tokens"] == {"stringValue": "34"}
        assert attrs["cost_usd"] == {"stringValue": "0.0"}
        assert attrs["user.email"] == {"stringValue": "dev@example.com"}
        assert payload["resourceLogs"][0]["scopeLogs"][0]["scope"]["name"] == "gemini_cli"

    def test_tool_call_kind(self):
        payload = build_payload(
            "s-2",
            EventFields(api_key="hak_t_abc123xyz0", duration_ms=42, attributes={"tool.id": "search", "success": True}),
            EventKind.TOOL_CALL,
        )
        attrs = _log_attrs(payload)
        assert _record(payload)["body"] == {"stringValue": "tool.call"}
        assert attrs["tool.id"] == {"stringValue": "search"}
        assert attrs["success"] == {"boolValue": True}
        assert attrs["duration_ms"] == {"intValue": 42}
        assert "input_tokens" not in attrs
        assert payload["resourceLogs"][0]["scopeLogs"][0]["scope"]["name"] == "tool_metering"

    def test_timestamps_strictly_increase(self):
        fields = EventFields(api_key="hak_t_abc123xyz0")
        stamps = [int(_record(build_payload("s", fields))["timeUnixNano"]) for _ in range(50)]
        assert all(b > a for a, b in zip(stamps, stamps[1:]))


class TestHelpers:

    def test_next_timestamp_is_nanoseconds(self):
        assert next_timestamp_ns() > 10**18

    def test_otlp_value_types(self):
        assert otlp_value(True) == {"boolValue": True}
        assert otlp_value(3) == {"intValue": 3}
        assert otlp_value(1.5) == {"doubleValue": 1.5}
        assert otlp_value("x") == {"stringValue": "x"}
