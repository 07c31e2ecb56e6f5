"""Error taxonomy shared by the API client, the coordinator and the views.

- ``CapacityError``: a hard ceiling would be exceeded; raised before any
  network call, so there is never anything to roll back.
- ``ValidationError``: the API answered non-2xx with ``details[]``.
- ``ApiError``: any other non-2xx answer.
- ``NetworkError``: the request never got an HTTP answer.
- ``BatchError``: one or more members of a parallel batch failed.
"""

from __future__ import annotations

from typing import Any


class PlannerError(Exception):
    """Base class for every error raised by twelveweeks."""


class CapacityError(PlannerError):
    def __init__(self, kind: str, limit: int, message: str | None = None) -> None:
        self.kind = kind
        self.limit = limit
        super().__init__(message or f"Cannot add to {kind}: limit of {limit} reached")


class ApiError(PlannerError):
    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        payload: Any = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.payload = payload
        super().__init__(message)


class ValidationError(ApiError):
    """Structured rejection; ``field_errors`` maps field -> first message."""

    @property
    def details(self) -> list[dict[str, Any]]:
        if isinstance(self.payload, dict) and isinstance(self.payload.get("details"), list):
            return [d for d in self.payload["details"] if isinstance(d, dict)]
        return []

    @property
    def field_errors(self) -> dict[str, str]:
        out: dict[str, str] = {}
        for detail in self.details:
            name = str(detail.get("field") or "")
            if name and name not in out:
                out[name] = str(detail.get("message", ""))
        return out


class NetworkError(ApiError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=None)


class BatchError(PlannerError):
    """Raised after a batch was rolled back because some members failed."""

    def __init__(self, errors: list[BaseException], succeeded: int, total: int) -> None:
        self.errors = errors
        self.succeeded = succeeded
        self.total = total
        first = errors[0] if errors else None
        super().__init__(
            f"{len(errors)} of {total} requests failed"
            + (f": {first}" if first is not None else "")
        )


def error_message(payload: Any, status_code: int | None = None) -> str:
    """Pick the user-facing message from an error envelope.

    ``details[0].message`` wins over ``error``; both missing falls back to the
    HTTP status.
    """
    if isinstance(payload, dict):
        details = payload.get("details")
        if isinstance(details, list) and details:
            first = details[0]
            if isinstance(first, dict) and first.get("message"):
                return str(first["message"])
        if payload.get("error"):
            return str(payload["error"])
    return f"HTTP {status_code}" if status_code is not None else "Request failed"
