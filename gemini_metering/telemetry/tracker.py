"""Tool-call metering.

Wraps a tool invocation, times it and ships a "tool.call" event in the
background. Metering never changes the tool's outcome: send failures are
logged and dropped, and the tool's own exception is re-raised untouched.

The caller passes a ToolContext with each call instead of relying on
ambient state.
"""

import asyncio
import inspect
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, TypeVar

from gemini_metering.config.constants import MIDDLEWARE_SOURCE
from gemini_metering.config.store import ConfigStore
from gemini_metering.logging.audit import get_audit_logger, session_id_var
from gemini_metering.security.masking import redact_secret
from gemini_metering.telemetry.client import TelemetryClient
from gemini_metering.telemetry.errors import TelemetryError
from gemini_metering.telemetry.payload import EventFields, EventKind, build_payload

T = TypeVar("T")


@dataclass
class ToolContext:
    session_id: str | None = None
    user_id: str | None = None
    organization_name: str | None = None
    product_name: str | None = None
    # Override the stored configuration when set
    api_key: str | None = None
    endpoint: str | None = None


@dataclass
class ToolMetadata:
    description: str | None = None
    category: str | None = None
    version: str | None = None
    tags: list[str] = field(default_factory=list)
    # Keys copied from a mapping result into usage_metadata
    output_fields: list[str] = field(default_factory=list)
    usage_metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolEvent:
    tool_id: str
    session_id: str
    duration_ms: int
    success: bool
    error_message: str | None = None
    metadata: ToolMetadata | None = None
    user_id: str | None = None
    organization_name: str | None = None
    product_name: str | None = None

    def attributes(self) -> dict[str, Any]:
        attrs: dict[str, Any] = {
            "tool.id": self.tool_id,
            "success": self.success,
            "middleware.source": MIDDLEWARE_SOURCE,
        }
        if self.error_message:
            attrs["error.message"] = self.error_message
        if self.user_id:
            attrs["user.id"] = self.user_id
        if self.organization_name:
            attrs["organization.name"] = self.organization_name
        if self.product_name:
            attrs["product.name"] = self.product_name

        meta = self.metadata
        if meta is not None:
            if meta.description:
                attrs["tool.description"] = meta.description
            if meta.category:
                attrs["tool.category"] = meta.category
            if meta.version:
                attrs["tool.version"] = meta.version
            if meta.tags:
                attrs["tool.tags"] = ",".join(meta.tags)
            for key, value in meta.usage_metadata.items():
                attrs[f"tool.usage.{key}"] = value if isinstance(value, (str, int, float, bool)) else str(value)
        return attrs


def _elapsed_ms(start: float) -> int:
    return round((time.perf_counter() - start) * 1000)


def extract_output_fields(result: Any, fields: list[str]) -> dict[str, Any]:
    if not isinstance(result, Mapping):
        return {}
    return {name: result[name] for name in fields if name in result}


class ToolTracker:
    """Meters tool calls through a TelemetryClient."""

    def __init__(self, client: TelemetryClient, store: ConfigStore | None = None):
        self._client = client
        self._store = store
        self._pending: set[asyncio.Task] = set()

    async def meter_tool(self, tool_id: str, fn: Callable[[], T | Awaitable[T]],
                         context: ToolContext | None = None,
                         metadata: ToolMetadata | None = None) -> T:
        """Run fn (sync or async), record its duration and outcome, return its result."""
        context = context or ToolContext()
        start = time.perf_counter()
        try:
            result = fn()
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            self._dispatch(self._event(tool_id, _elapsed_ms(start), context, False, str(exc), metadata), context)
            raise

        if metadata is not None and metadata.output_fields:
            extracted = extract_output_fields(result, metadata.output_fields)
            metadata = ToolMetadata(
                description=metadata.description,
                category=metadata.category,
                version=metadata.version,
                tags=list(metadata.tags),
                output_fields=list(metadata.output_fields),
                usage_metadata={**metadata.usage_metadata, **extracted},
            )
        self._dispatch(self._event(tool_id, _elapsed_ms(start), context, True, None, metadata), context)
        return result

    def report_tool_call(self, tool_id: str, context: ToolContext, success: bool,
                         duration_ms: int, error_message: str | None = None,
                         metadata: ToolMetadata | None = None) -> None:
        """Record a tool call that was timed by the caller.

        Must be called while an event loop is running.
        """
        self._dispatch(self._event(tool_id, duration_ms, context, success, error_message, metadata), context)

    async def drain(self) -> None:
        """Wait for every in-flight event send to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _event(self, tool_id: str, duration_ms: int, context: ToolContext, success: bool,
               error_message: str | None, metadata: ToolMetadata | None) -> ToolEvent:
        return ToolEvent(
            tool_id=tool_id,
            session_id=context.session_id or "unknown",
            duration_ms=duration_ms,
            success=success,
            error_message=error_message,
            metadata=metadata,
            user_id=context.user_id,
            organization_name=context.organization_name,
            product_name=context.product_name,
        )

    def _dispatch(self, event: ToolEvent, context: ToolContext) -> None:
        task = asyncio.get_running_loop().create_task(self.send_tool_event(event, context))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def send_tool_event(self, event: ToolEvent, context: ToolContext) -> bool:
        """Send one event. Returns False when skipped or failed; never raises."""
        endpoint = context.endpoint
        api_key = context.api_key
        config = None
        if (not endpoint or not api_key) and self._store is not None:
            config = await self._store.load()
            endpoint = endpoint or (config.endpoint if config else None)
            api_key = api_key or (config.api_key if config else None)

        logger = get_audit_logger()
        if not endpoint or not api_key:
            logger.debug("Tool event skipped: no metering configuration",
                         extra={"audit_data": {"tool_id": event.tool_id}})
            return False

        fields = EventFields(
            api_key=api_key,
            duration_ms=event.duration_ms,
            organization_name=event.organization_name or (config.organization_name if config else None),
            product_name=event.product_name or (config.product_name if config else None),
            cost_multiplier=config.cost_multiplier if config else None,
            attributes=event.attributes(),
        )
        token = session_id_var.set(event.session_id)
        try:
            payload = build_payload(event.session_id, fields, EventKind.TOOL_CALL)
            await self._client.send(endpoint, api_key, payload)
        except TelemetryError as exc:
            # Metering must not break the host tool; drop after retries
            logger.warning(
                "Tool event dropped",
                extra={"audit_data": {"tool_id": event.tool_id, "error": redact_secret(str(exc), api_key)}},
            )
            return False
        finally:
            session_id_var.reset(token)
        return True
