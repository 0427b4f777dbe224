"""Encoding of configuration values for the composite attribute variable
and for the two shell dialects the config files are written in.

Composite string (OTEL_RESOURCE_ATTRIBUTES):
    revenium.api_key=hak_x_y,organization.name=Acme%2C Inc.
Only "%", "," and "=" are percent-escaped; everything else stays readable.

POSIX dialect:  export KEY='value'   (a quote becomes '\\'')
Fish dialect:   set -gx KEY 'value'  (a quote becomes \\', a backslash \\\\)
"""

import shlex
from collections.abc import Iterable, Mapping
from urllib.parse import unquote

_COMPOSITE_ESCAPES = (("%", "%25"), (",", "%2C"), ("=", "%3D"))

POSIX_EXPORT_PREFIX = "export "
FISH_SET_PREFIX = "set -gx "


# --- Composite attribute string ---

def escape_attribute_value(value: str) -> str:
    # "%" must go first so the escapes added below are not re-escaped
    for raw, escaped in _COMPOSITE_ESCAPES:
        value = value.replace(raw, escaped)
    return value


def encode_resource_attributes(attributes: Mapping[str, str],
                               key_order: Iterable[str] | None = None) -> str:
    """Join key=value pairs with commas in a deterministic order.

    Keys listed in key_order come first, in that order; any remaining keys
    follow sorted. Keys whose value is None are skipped.
    """
    ordered: list[str] = []
    for key in key_order or ():
        if key in attributes and key not in ordered:
            ordered.append(key)
    ordered.extend(sorted(k for k in attributes if k not in ordered))

    return ",".join(
        f"{key}={escape_attribute_value(str(attributes[key]))}"
        for key in ordered
        if attributes[key] is not None
    )


def decode_resource_attributes(value: str) -> dict[str, str]:
    """Inverse of encode_resource_attributes. Segments without "=" are skipped."""
    result: dict[str, str] = {}
    if not value:
        return result

    for segment in value.split(","):
        key, sep, raw = segment.partition("=")
        key = key.strip()
        if not sep or not key:
            continue
        result[key] = unquote(raw)
    return result


# --- POSIX shell dialect ---

def quote_posix(value: str) -> str:
    return "'" + value.replace("'", "'\\''") + "'"


def encode_posix(variables: Mapping[str, str]) -> str:
    return "".join(f"{POSIX_EXPORT_PREFIX}{key}={quote_posix(value)}\n" for key, value in variables.items())


def decode_posix(content: str) -> dict[str, str]:
    """Parse export KEY='value' lines. Comments and blank lines are ignored."""
    result: dict[str, str] = {}
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith(POSIX_EXPORT_PREFIX):
            line = line[len(POSIX_EXPORT_PREFIX):].strip()

        key, sep, raw = line.partition("=")
        key = key.strip()
        if not sep or not key:
            continue
        try:
            result[key] = "".join(shlex.split(raw, comments=False, posix=True))
        except ValueError:
            # Unbalanced quotes; keep the raw text rather than dropping the key
            result[key] = raw.strip()
    return result


# --- Fish shell dialect ---

def quote_fish(value: str) -> str:
    return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"


def encode_fish(variables: Mapping[str, str]) -> str:
    return "".join(f"{FISH_SET_PREFIX}{key} {quote_fish(value)}\n" for key, value in variables.items())


def unquote_fish(raw: str) -> str:
    """Undo fish single quoting. Unquoted text is returned as-is."""
    raw = raw.strip()
    if len(raw) < 2 or not (raw.startswith("'") and raw.endswith("'")):
        return raw

    out: list[str] = []
    body = raw[1:-1]
    i = 0
    while i < len(body):
        char = body[i]
        if char == "\\" and i + 1 < len(body) and body[i + 1] in ("\\", "'"):
            out.append(body[i + 1])
            i += 2
            continue
        out.append(char)
        i += 1
    return "".join(out)


def decode_fish(content: str) -> dict[str, str]:
    """Parse set -gx KEY 'value' lines. Comments and blank lines are ignored."""
    result: dict[str, str] = {}
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if not line.startswith(FISH_SET_PREFIX):
            continue

        key, _, raw = line[len(FISH_SET_PREFIX):].strip().partition(" ")
        if not key:
            continue
        result[key] = unquote_fish(raw)
    return result
