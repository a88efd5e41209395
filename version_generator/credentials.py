"""Credential decoding.

Secrets are often pasted into CI secret stores either as raw JSON or as
base64-encoded JSON, sometimes re-wrapped with line breaks or still wrapped
in the quotes an environment layer preserved. These helpers decide which
form a value is in and normalize it.

The order of checks matters: a value that parses directly to a JSON object
or array is always taken literally, while a JSON primitive such as ``true``
is still a base64 candidate.
"""

from __future__ import annotations

import base64
import binascii
import json
import re
from typing import Any

from .errors import DecodeError

_BASE64_RE = re.compile(r"^[A-Za-z0-9+/]*={0,2}$")
_WHITESPACE_RE = re.compile(r"\s")


def _unquote(value: str) -> str:
    """Strip one pair of wrapping double quotes, repeatedly."""
    while len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        value = value[1:-1]
    return value


def _b64decode_text(candidate: str) -> str:
    """Decode base64 to text.

    Missing padding is tolerated. Invalid UTF-8 sequences are replaced
    rather than rejected, so any well-formed base64 yields some text.

    Raises:
        binascii.Error: If the candidate is not decodable base64.
    """
    padded = candidate + "=" * (-len(candidate) % 4)
    return base64.b64decode(padded, validate=True).decode("utf-8", errors="replace")


def _is_json_container(value: str) -> bool:
    try:
        parsed = json.loads(value)
    except ValueError:
        return False
    return isinstance(parsed, (dict, list))


def is_encoded_json(value: Any, expect_json: bool = False) -> bool:
    """Return True if ``value`` is base64-encoded content.

    Args:
        value: Candidate string.
        expect_json: If True, the decoded content must be a JSON object, and
            a value that already parses as a JSON object or array is treated
            as literal JSON. If False, any non-empty decode qualifies.

    Examples:
        is_encoded_json('{"a":1}', True) → False
        is_encoded_json("true", False) → True
        is_encoded_json("eyJhIjoxfQ==", True) → True
    """
    if not isinstance(value, str) or not value:
        return False

    if value.startswith('"') and value.endswith('"') and len(value) >= 2:
        return is_encoded_json(value[1:-1], expect_json)

    if expect_json and _is_json_container(value):
        return False

    candidate = _WHITESPACE_RE.sub("", value)
    if not _BASE64_RE.match(candidate):
        return False

    try:
        decoded = _b64decode_text(candidate)
    except (binascii.Error, ValueError):
        return False
    if not decoded:
        return False

    if not expect_json:
        return True

    try:
        parsed = json.loads(decoded)
    except ValueError:
        return False
    return isinstance(parsed, dict)


def decode_base64_text(value: str) -> str:
    """Decode a base64 value, ignoring wrapping quotes and whitespace."""
    return _b64decode_text(_WHITESPACE_RE.sub("", _unquote(value)))


def parse_value(value: str) -> Any:
    """Parse a value that is either JSON or base64-encoded JSON.

    Raises:
        DecodeError: If the value is neither form.
    """
    if is_encoded_json(value, expect_json=True):
        try:
            return json.loads(decode_base64_text(value))
        except (binascii.Error, ValueError) as exc:
            raise DecodeError(f"base64 JSON decode failed: {exc}") from exc

    try:
        return json.loads(value)
    except (TypeError, ValueError) as exc:
        raise DecodeError(
            f"value is neither JSON nor base64-encoded JSON: {exc}"
        ) from exc
