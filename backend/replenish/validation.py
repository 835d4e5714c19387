from __future__ import annotations

from flask import request

from .errors import ValidationError


# Upper bound for list endpoints
MAX_PAGE_SIZE = 200


def json_body() -> dict:
    """Request JSON as a dict; an empty body is an empty dict."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def reject_unknown(data: dict, allowed: set[str]) -> None:
    unknown = set(data) - allowed
    if unknown:
        raise ValidationError("Unknown fields", details={"fields": sorted(unknown)})


def int_arg(name: str, default: int, maximum: int | None = None) -> int:
    """
    Non-negative integer query argument.

    Plain digits only; "1e3" and "12.5" are rejected rather than coerced.
    """
    raw = request.args.get(name)
    if raw is None or raw.strip() == "":
        return default
    stripped = raw.strip()
    if not stripped.isdigit():
        raise ValidationError(f"{name} must be a non-negative integer")
    value = int(stripped)
    if maximum is not None:
        value = min(value, maximum)
    return value


def bool_arg(name: str, default: bool) -> bool:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    lowered = raw.strip().lower()
    if lowered in ("1", "true", "yes"):
        return True
    if lowered in ("0", "false", "no"):
        return False
    raise ValidationError(f"{name} must be true or false")
