"""
Small helpers shared by the JSON blueprints.
"""
from __future__ import annotations

import math
from typing import Any

from flask import current_app, jsonify, request


class BadRequest(Exception):
    """Raised by handlers when the request payload fails validation."""

    def __init__(self, details: list[str] | str, message: str = "Invalid data") -> None:
        super().__init__(message)
        self.message = message
        self.details = [details] if isinstance(details, str) else list(details)


def json_error(status: int, message: str, details: list[str] | None = None):
    body: dict[str, Any] = {"error": message}
    if details:
        body["details"] = details
    return jsonify(body), status


def json_body() -> dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise BadRequest("Request body must be a JSON object.")
    return data


def parse_bool(raw: Any) -> bool | None:
    """Query-string/form booleans. Returns None when the value is absent or unrecognised."""
    if isinstance(raw, bool):
        return raw
    if raw is None:
        return None
    value = str(raw).strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    return None


def _int_arg(name: str, default: int) -> int:
    raw = (request.args.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def parse_pagination() -> tuple[int, int]:
    default = int(current_app.config.get("PAGE_SIZE_DEFAULT", 10))
    maximum = int(current_app.config.get("PAGE_SIZE_MAX", 100))
    page = max(_int_arg("page", 1), 1)
    limit = min(max(_int_arg("limit", default), 1), maximum)
    return page, limit


def pagination_block(page: int, limit: int, total: int) -> dict[str, int]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) if limit else 0,
    }


def isoformat(value) -> str | None:
    return value.isoformat() if value is not None else None
