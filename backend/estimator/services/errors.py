"""Error taxonomy for the takeoff pipeline.

Every failure raised past a service boundary is an ``EstimatorError`` so the
API layer can turn it into a structured response (see ``api.deps.http_error``).
"""
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional


class ErrorCode:
    NOT_FOUND = "NOT_FOUND"
    UPSTREAM_UNAVAILABLE = "UPSTREAM_UNAVAILABLE"
    MALFORMED_GEOMETRY = "MALFORMED_GEOMETRY"
    CONCURRENCY_CONFLICT = "CONCURRENCY_CONFLICT"
    REDETECTION_FAILED = "REDETECTION_FAILED"
    REDETECTION_UNAVAILABLE = "REDETECTION_UNAVAILABLE"


class EstimatorError(Exception):
    """Base error carrying a code, a message and structured details."""

    status_code = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class NotFoundError(EstimatorError):
    """No job/page/takeoff/section matches the identifier. Terminal for the request."""

    status_code = 404

    def __init__(self, entity: str, entity_id: str):
        super().__init__(
            ErrorCode.NOT_FOUND,
            f"{entity} {entity_id} not found",
            {"entity": entity, "id": entity_id},
        )
        self.entity = entity
        self.entity_id = entity_id


class UpstreamUnavailableError(EstimatorError):
    """A detection store tier could not be read."""

    status_code = 503

    def __init__(self, tier: str, reason: str = ""):
        super().__init__(
            ErrorCode.UPSTREAM_UNAVAILABLE,
            f"detection store '{tier}' unavailable: {reason}".rstrip(": "),
            {"tier": tier},
        )
        self.tier = tier


class MalformedGeometryError(EstimatorError):
    """Raised by polygon parsing; the converter maps it to null measurements."""

    status_code = 422

    def __init__(self, message: str, detection_id: Optional[str] = None):
        super().__init__(ErrorCode.MALFORMED_GEOMETRY, message, {"detection_id": detection_id})


class ConcurrencyConflictError(EstimatorError):
    """The takeoff changed since the caller read it; reload and retry."""

    status_code = 409

    def __init__(self, takeoff_id: str, expected_version: int, current_version: Optional[int] = None):
        super().__init__(
            ErrorCode.CONCURRENCY_CONFLICT,
            f"takeoff {takeoff_id} changed since version {expected_version}; reload and retry",
            {
                "takeoff_id": takeoff_id,
                "expected_version": expected_version,
                "current_version": current_version,
            },
        )
        self.current_version = current_version


class RedetectionError(EstimatorError):
    """The external re-detection service failed or returned garbage."""

    status_code = 502

    def __init__(self, message: str, page_id: str, code: str = ErrorCode.REDETECTION_FAILED):
        super().__init__(code, message, {"page_id": page_id})
        if code == ErrorCode.REDETECTION_UNAVAILABLE:
            self.status_code = 501


@dataclass
class ValidationFailure:
    """Recoverable per-line-item warning reported alongside priced totals."""
    line_item_id: str
    field: str
    message: str
    value: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
