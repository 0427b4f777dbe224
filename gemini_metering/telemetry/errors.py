"""Telemetry error types."""


class MissingCredentialError(ValueError):
    """A payload was requested without an API key. Caller bug, not a network condition."""


class TelemetryError(Exception):
    """Final transport failure after retries. The message is already redacted."""

    def __init__(self, message: str, status_code: int | None = None, retryable: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable
