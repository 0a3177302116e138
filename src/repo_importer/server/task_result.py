"""Celery result normalization for the import status endpoints."""

from __future__ import annotations

from typing import Any

__all__ = ["normalize_task_result"]


def normalize_task_result(status: str, raw_result: Any) -> dict[str, Any] | None:
    """Normalize Celery task results into JSON-serializable dicts.

    Failed imports come back as exception instances; they are reported with
    their type and the ``retryable`` / ``user_actionable`` flags of the
    importer's error classes so clients can tell "reconnect GitHub" apart
    from "try again later".
    """
    if raw_result is None:
        return None
    if isinstance(raw_result, dict):
        return raw_result
    if isinstance(raw_result, BaseException):
        return {
            "error": str(raw_result),
            "error_type": type(raw_result).__name__,
            "retryable": bool(getattr(raw_result, "retryable", False)),
            "user_actionable": bool(getattr(raw_result, "user_actionable", False)),
            "status": status,
        }
    return {
        "value": str(raw_result),
        "value_type": type(raw_result).__name__,
        "status": status,
    }
