"""Input validation for metering configuration fields.

Every validator is a pure function returning a ValidationResult listing
all rules that failed. Nothing here raises for bad input; callers decide
whether a failure blocks progress.
"""

import ipaddress
import math
import re
from dataclasses import dataclass, field
from urllib.parse import urlsplit

from gemini_metering.config.constants import (
    API_KEY_MIN_LENGTH,
    API_KEY_PREFIX,
    EMAIL_MAX_LENGTH,
    FREE_TEXT_MAX_LENGTH,
)
from gemini_metering.config.models import MeteringConfig

_EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


@dataclass
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)


def _result(errors: list[str]) -> ValidationResult:
    return ValidationResult(valid=not errors, errors=errors)


def validate_api_key(api_key: str) -> ValidationResult:
    """Check the hak_{tenant}_{key} shape."""
    if not api_key or not api_key.strip():
        return _result(["API key is required"])

    errors: list[str] = []
    if not api_key.startswith(API_KEY_PREFIX):
        errors.append(f'API key must start with "{API_KEY_PREFIX}"')

    if len(api_key.split("_")) < 3:
        errors.append("API key format should be: hak_{tenant}_{key}")

    if len(api_key) < API_KEY_MIN_LENGTH:
        errors.append("API key appears too short")

    return _result(errors)


def validate_email(email: str | None) -> ValidationResult:
    """Email is optional; empty input is valid."""
    if not email or not email.strip():
        return _result([])

    errors: list[str] = []
    if not _EMAIL_RE.match(email):
        errors.append("Invalid email format")
    if len(email) > EMAIL_MAX_LENGTH:
        errors.append(f"Email address is too long (max {EMAIL_MAX_LENGTH} characters)")
    return _result(errors)


def _is_loopback(host: str) -> bool:
    if host == "localhost":
        return True
    try:
        return ipaddress.ip_address(host).is_loopback
    except ValueError:
        return False


def validate_endpoint(url: str | None) -> ValidationResult:
    """Absolute http(s) URL; plain http only for loopback; no userinfo."""
    if not url or not url.strip():
        return _result(["Endpoint URL is required"])

    try:
        parts = urlsplit(url.strip())
        host = parts.hostname or ""
        # Accessing port validates it (raises ValueError when out of range)
        parts.port
    except ValueError:
        return _result(["Invalid endpoint URL format"])

    if not parts.scheme or not host:
        return _result(["Invalid endpoint URL format"])

    errors: list[str] = []
    scheme = parts.scheme.lower()
    if scheme not in ("http", "https"):
        errors.append("Endpoint must use HTTP or HTTPS protocol")
    elif scheme == "http" and not _is_loopback(host):
        errors.append("Endpoint must use HTTPS (except for localhost)")

    if parts.username or parts.password:
        errors.append("Endpoint must not contain embedded credentials (username:password)")

    return _result(errors)


def validate_free_text(value: str | None, max_length: int = FREE_TEXT_MAX_LENGTH,
                       label: str = "Value") -> ValidationResult:
    """Trimmed value must be non-empty and at most max_length characters."""
    trimmed = (value or "").strip()
    if not trimmed:
        return _result([f"{label} is required"])
    if len(trimmed) > max_length:
        return _result([f"{label} is too long (max {max_length} characters)"])
    return _result([])


def validate_config(config: MeteringConfig) -> ValidationResult:
    """Aggregate every field check for a full configuration record."""
    errors: list[str] = []
    errors.extend(validate_api_key(config.api_key).errors)
    errors.extend(validate_email(config.email).errors)
    errors.extend(validate_endpoint(config.endpoint).errors)

    # Attribution names are optional; only bound their length when present
    if config.organization_name:
        errors.extend(validate_free_text(config.organization_name, label="Organization name").errors)
    if config.product_name:
        errors.extend(validate_free_text(config.product_name, label="Product name").errors)

    if config.cost_multiplier is not None:
        multiplier = config.cost_multiplier
        if not math.isfinite(multiplier) or multiplier <= 0:
            errors.append("Cost multiplier must be a positive finite number")

    return _result(errors)
