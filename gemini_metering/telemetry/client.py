"""HTTP transport for OTLP log payloads.

send() posts to {base}/meter/v2/otlp/v1/logs with a per-attempt timeout and
retries transient failures with a linearly growing delay:

    attempt 0 -> fail (retryable) -> sleep 1x delay
    attempt 1 -> fail (retryable) -> sleep 2x delay
    attempt 2 -> fail             -> TelemetryError

Retryable: HTTP 408/429/500/502/503/504, timeouts, connection resets, dropped
connections and DNS/connect failures. Everything else fails on the first
attempt.

Every error message is scrubbed of the API key before it is raised or logged.
"""

import asyncio
import re
from dataclasses import dataclass, replace
from typing import Any

import httpx

from gemini_metering.config.constants import OTLP_LOGS_PATH
from gemini_metering.config.settings import get_settings
from gemini_metering.config.store import get_full_otlp_endpoint
from gemini_metering.logging.audit import (
    RequestTimer,
    generate_session_id,
    get_audit_logger,
    session_id_var,
)
from gemini_metering.security.masking import redact_secret
from gemini_metering.telemetry.errors import MissingCredentialError, TelemetryError
from gemini_metering.telemetry.payload import EventFields, EventKind, build_payload

RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

# Only trust a status code that came from our own failure message format
_STATUS_IN_MESSAGE = re.compile(r"OTLP request failed: (\d{3})\b")


@dataclass
class OTLPResponse:
    id: str
    resource_type: str
    processed_events: int
    created: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OTLPResponse":
        return cls(
            id=str(data.get("id", "")),
            resource_type=str(data.get("resourceType", "")),
            processed_events=int(data.get("processedEvents", 0) or 0),
            created=str(data.get("created", "")),
        )


@dataclass
class HealthCheckResult:
    healthy: bool
    message: str
    status_code: int | None = None
    latency_ms: float = 0.0


def extract_status_code(message: str) -> int | None:
    match = _STATUS_IN_MESSAGE.search(message)
    return int(match.group(1)) if match else None


class TelemetryClient:
    """Sends OTLP log payloads to the metering backend."""

    def __init__(self, timeout: float | None = None, max_attempts: int | None = None,
                 retry_delay: float | None = None):
        settings = get_settings()
        self.timeout = timeout if timeout is not None else settings.request_timeout_seconds
        self.max_attempts = max(1, max_attempts if max_attempts is not None else settings.max_attempts)
        self.retry_delay = retry_delay if retry_delay is not None else settings.retry_delay_seconds
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
        return self._client

    async def send(self, endpoint: str, api_key: str, payload: dict[str, Any]) -> OTLPResponse:
        """POST payload; raise TelemetryError once retries are exhausted."""
        url = f"{get_full_otlp_endpoint(endpoint)}{OTLP_LOGS_PATH}"
        headers = {
            "Content-Type": "application/json",
            "x-api-key": api_key,
        }
        logger = get_audit_logger()
        client = await self._get_client()

        for attempt in range(self.max_attempts):
            try:
                # httpx timeouts are per phase; wait_for caps the whole attempt
                response = await asyncio.wait_for(
                    client.post(url, json=payload, headers=headers), self.timeout
                )
            except (httpx.TimeoutException, asyncio.TimeoutError):
                error = TelemetryError(f"Request timeout after {int(self.timeout * 1000)}ms", retryable=True)
            except (httpx.NetworkError, httpx.RemoteProtocolError) as exc:
                # Connect/DNS failures, resets, read/write errors, dropped connections
                error = TelemetryError(
                    redact_secret(f"Network error: {exc}", api_key), retryable=True
                )
            except (httpx.HTTPError, httpx.InvalidURL) as exc:
                error = TelemetryError(redact_secret(f"Request failed: {exc}", api_key))
            else:
                if 200 <= response.status_code < 300:
                    return self._parse_response(response, api_key)
                error = TelemetryError(
                    redact_secret(
                        f"OTLP request failed: {response.status_code} "
                        f"{response.reason_phrase} - {response.text}",
                        api_key,
                    ),
                    status_code=response.status_code,
                    retryable=response.status_code in RETRYABLE_STATUS_CODES,
                )

            if not error.retryable or attempt == self.max_attempts - 1:
                logger.warning(
                    "Telemetry send failed",
                    extra={"audit_data": {
                        "url": url,
                        "attempts": attempt + 1,
                        "status_code": error.status_code,
                        "error": str(error),
                    }},
                )
                raise error

            delay = self.retry_delay * (attempt + 1)
            logger.info(
                "Telemetry send retrying",
                extra={"audit_data": {
                    "attempt": attempt + 1,
                    "delay_seconds": delay,
                    "status_code": error.status_code,
                    "error": str(error),
                }},
            )
            await asyncio.sleep(delay)

        # max_attempts >= 1, so the loop always returns or raises
        raise TelemetryError("Request failed after retries")

    @staticmethod
    def _parse_response(response: httpx.Response, api_key: str) -> OTLPResponse:
        try:
            data = response.json()
        except ValueError as exc:
            raise TelemetryError(
                redact_secret(f"Invalid JSON in OTLP response: {exc}", api_key),
                status_code=response.status_code,
            ) from None
        if not isinstance(data, dict):
            raise TelemetryError("Unexpected OTLP response shape", status_code=response.status_code)
        try:
            return OTLPResponse.from_dict(data)
        except (TypeError, ValueError) as exc:
            raise TelemetryError(
                redact_secret(f"Malformed OTLP response: {exc}", api_key),
                status_code=response.status_code,
            ) from None

    async def check_health(self, endpoint: str, api_key: str,
                           fields: EventFields | None = None) -> HealthCheckResult:
        """Send a connectivity-test event and report the outcome. Never raises."""
        session_id = generate_session_id()
        token = session_id_var.set(session_id)
        try:
            with RequestTimer() as timer:
                try:
                    event = replace(fields or EventFields(), api_key=api_key)
                    payload = build_payload(session_id, event, EventKind.API_RESPONSE)
                    response = await self.send(endpoint, api_key, payload)
                except (TelemetryError, MissingCredentialError) as exc:
                    failure = redact_secret(str(exc), api_key)
                else:
                    failure = None
        finally:
            session_id_var.reset(token)

        if failure is not None:
            return HealthCheckResult(
                healthy=False,
                status_code=extract_status_code(failure),
                message=failure,
                latency_ms=timer.elapsed_ms,
            )
        return HealthCheckResult(
            healthy=True,
            status_code=200,
            message=f"Endpoint healthy. Processed {response.processed_events} event(s).",
            latency_ms=timer.elapsed_ms,
        )

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
