"""Masking and redaction of secrets in user-facing text.

- mask_api_key / mask_email: partial display for LoadResult.describe()
- redact_secret: full removal of a literal secret from error text
"""

import re

from gemini_metering.config.constants import API_KEY_PREFIX

REDACTION_MASK = "***"


def mask_api_key(api_key: str) -> str:
    """Show only the prefix and last 4 characters: hak_***xyz0."""
    if not api_key or len(api_key) < 8:
        return REDACTION_MASK
    return f"{api_key[:len(API_KEY_PREFIX)]}{REDACTION_MASK}{api_key[-4:]}"


def mask_email(email: str) -> str:
    """Show only the first character and the domain: d***@company.com."""
    at_index = email.find("@")
    if at_index <= 0:
        return REDACTION_MASK
    return f"{email[0]}{REDACTION_MASK}{email[at_index:]}"


def redact_secret(message: str, secret: str | None) -> str:
    """Replace every literal occurrence of secret in message with the mask."""
    if not secret or not message:
        return message
    return re.sub(re.escape(secret), REDACTION_MASK, message)
