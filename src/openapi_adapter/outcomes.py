"""Classification of upstream HTTP failures."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from fastmcp.exceptions import ResourceError
from mcp.types import INTERNAL_ERROR, INVALID_PARAMS, INVALID_REQUEST, METHOD_NOT_FOUND


DEFAULT_ERROR_DETAILS = "Unknown API Error"
FALLBACK_STATUS = 500


class Outcome(str, Enum):
    VALIDATION_FAILURE = "ValidationFailure"
    AUTH_FAILURE = "AuthFailure"
    # Part of the taxonomy, but a 404 is reported as VALIDATION_FAILURE.
    NOT_FOUND_OR_BAD_TARGET = "NotFoundOrBadTarget"
    METHOD_UNSUPPORTED = "MethodUnsupported"
    UPSTREAM_FAILURE = "UpstreamFailure"

    @property
    def error_code(self) -> int:
        """JSON-RPC error code used when the outcome is raised to the protocol layer."""
        return _ERROR_CODES[self]


_ERROR_CODES = {
    Outcome.VALIDATION_FAILURE: INVALID_PARAMS,
    Outcome.AUTH_FAILURE: INVALID_REQUEST,
    Outcome.NOT_FOUND_OR_BAD_TARGET: INVALID_REQUEST,
    Outcome.METHOD_UNSUPPORTED: METHOD_NOT_FOUND,
    Outcome.UPSTREAM_FAILURE: INTERNAL_ERROR,
}


@dataclass(frozen=True)
class ClassifiedError:
    outcome: Outcome
    status: int
    details: str

    @property
    def message(self) -> str:
        return f"API Error ({self.status}): {self.details}"

    @property
    def category_message(self) -> str:
        return f"{self.outcome.value} ({self.status}): {self.details}"


class ResourceReadError(ResourceError):
    """Raised by resource reads; carries the classified outcome."""

    def __init__(self, error: ClassifiedError) -> None:
        super().__init__(error.category_message)
        self.error = error
        self.outcome = error.outcome
        self.status = error.status


def classify_status(status: Optional[int]) -> Outcome:
    if status == 400:
        return Outcome.VALIDATION_FAILURE
    if status in (401, 403):
        return Outcome.AUTH_FAILURE
    if status == 404:
        return Outcome.VALIDATION_FAILURE
    if status == 405:
        return Outcome.METHOD_UNSUPPORTED
    return Outcome.UPSTREAM_FAILURE


def classify(status: Optional[int], error_payload: Any = None) -> ClassifiedError:
    return ClassifiedError(
        outcome=classify_status(status),
        status=status if status else FALLBACK_STATUS,
        details=format_details(error_payload),
    )


def format_details(error_payload: Any) -> str:
    if error_payload is None or error_payload == "":
        return DEFAULT_ERROR_DETAILS
    if isinstance(error_payload, str):
        return error_payload
    try:
        return json.dumps(error_payload, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(error_payload)
