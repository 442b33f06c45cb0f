"""
Error taxonomy for the Compliance Posture engine.

Every engine operation raises one of these with a stable ``code`` so that the
caller (HTTP route, CLI, UI) can present a targeted message:

- ValidationError: input missing or out of range. Caller must correct it.
- ConflictError: duplicate evidence path or policy/control mapping. Caller must
  decide explicitly (overwrite or abandon).
- NotFoundError: referenced control, policy, framework, risk or evidence row
  does not exist.
- ExternalServiceError: relational store or object storage failed. Not retried
  by the engine.
"""

from __future__ import annotations

from typing import Any, Dict

import pydantic


class EngineError(Exception):
    """Base class for all engine errors.

    Attributes:
        code: Stable error code for programmatic handling
        message: Human-readable error description
        details: Extra context for the caller (ids, paths)
    """

    error = "engine_error"
    status_code = 500

    def __init__(self, code: str, message: str, **details: Any):
        self.code = code
        self.message = message
        self.details = details
        super().__init__(f"{code}: {message}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for JSON serialization."""
        return {
            "error": self.error,
            "code": self.code,
            "message": self.message,
            **self.details,
        }


class ValidationError(EngineError):
    error = "validation_error"
    status_code = 422

    @classmethod
    def from_pydantic(cls, exc: pydantic.ValidationError) -> "ValidationError":
        """Wrap a pydantic validation failure raised at a record boundary."""
        problems = [
            {
                "field": ".".join(str(part) for part in err["loc"]),
                "message": err["msg"],
            }
            for err in exc.errors()
        ]
        return cls("INVALID_INPUT", f"{exc.error_count()} invalid field(s)", problems=problems)


class ConflictError(EngineError):
    error = "conflict"
    status_code = 409


class NotFoundError(EngineError):
    error = "not_found"
    status_code = 404


class ExternalServiceError(EngineError):
    error = "external_service_error"
    status_code = 502
