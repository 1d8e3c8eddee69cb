"""Parameter helpers shared by API callers."""

import json
import math
from typing import Any

from core.errors.exceptions import ValidationError

DEFAULT_LIMIT = 100


def normalize_metadata(value: Any) -> dict[str, str]:
    """
    Normalize metadata input into a dict of strings.

    Accepts a dict or a string holding a JSON object. None values are
    dropped and all other values are stringified.

    Raises:
        ValidationError: Input is neither a dict nor a JSON object string
    """
    parsed = value
    if parsed is None:
        return {}

    if isinstance(parsed, str):
        trimmed = parsed.strip()
        if not trimmed:
            return {}
        try:
            parsed = json.loads(trimmed)
        except json.JSONDecodeError as e:
            raise ValidationError(
                "Metadata must be a JSON object (dictionary). "
                "If providing a string, it must be valid JSON.",
                cause=e,
            ) from e

    if not isinstance(parsed, dict):
        raise ValidationError("Metadata must be a JSON object (dictionary of string keys).")

    return {
        str(key): entry if isinstance(entry, str) else _stringify(entry)
        for key, entry in parsed.items()
        if entry is not None
    }


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


def clamp_limit(value: Any, default: int = DEFAULT_LIMIT) -> int:
    """Coerce a user-supplied limit to a positive int, falling back to default."""
    if isinstance(value, bool) or value is None:
        return default
    try:
        raw = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(raw):
        return default
    as_int = math.floor(raw)
    return as_int if as_int > 0 else default


def apply_return_all_limit(value: Any, return_all: bool, limit: Any) -> Any:
    """Truncate a list result to limit unless return_all is set."""
    if return_all or not isinstance(value, list):
        return value
    return value[: clamp_limit(limit)]


def apply_return_all_limit_to_array_property(
    value: Any,
    return_all: bool,
    limit: Any,
    property_name: str,
) -> Any:
    """
    Truncate the list stored under property_name unless return_all is set.

    Returns a shallow copy; the input is never mutated.
    """
    if return_all or not isinstance(value, dict):
        return value
    entry = value.get(property_name)
    if not isinstance(entry, list):
        return value
    return {**value, property_name: entry[: clamp_limit(limit)]}
