"""
Error kinds raised by the tenancy/occupancy core.

Every error carries a kind, a human readable message and the ids it refers to,
so callers can decide on retries without parsing messages.
"""
from typing import Any, Dict, Iterable, Optional


class DormError(Exception):
    kind = "error"

    def __init__(self, message: str, **ids: Any):
        super().__init__(message)
        self.message = message
        self.ids: Dict[str, Any] = {k: v for k, v in ids.items() if v is not None}

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message, "ids": dict(self.ids)}


class ValidationError(DormError):
    """Missing or malformed input, nothing was touched"""
    kind = "validation"

    def __init__(self, message: str, errors: Optional[list] = None, **ids: Any):
        super().__init__(message, **ids)
        self.errors = errors or []


# --- Conflicts ---

class ConflictError(DormError):
    kind = "conflict"
    reason = "conflict"

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["reason"] = self.reason
        return data


class RoomFullError(ConflictError):
    reason = "room_full"


class DuplicateCurrentOccupancyError(ConflictError):
    reason = "duplicate_current_occupancy"


class DuplicateEmailError(ConflictError):
    reason = "duplicate_email"


class StaleVersionError(ConflictError):
    reason = "stale_version"


# --- External dependencies ---

class DependencyError(DormError):
    kind = "dependency"
    timeout = False


class DependencyTimeoutError(DependencyError):
    timeout = True


# --- Missing references ---

class NotFoundError(DormError):
    kind = "not_found"
    entity = "record"


class RoomNotFoundError(NotFoundError):
    entity = "room"


class TenantNotFoundError(NotFoundError):
    entity = "tenant"


class IdentityNotFoundError(NotFoundError):
    entity = "identity"


class OccupancyNotFoundError(NotFoundError):
    entity = "occupancy"


class PartialSuccessError(DormError):
    """Some provisioning steps committed before a later one failed"""
    kind = "partial_success"

    def __init__(
        self,
        message: str,
        failed_step: str,
        completed_steps: Iterable[str],
        cause: Optional[DormError] = None,
        **ids: Any
    ):
        super().__init__(message, **ids)
        self.failed_step = failed_step
        self.completed_steps = list(completed_steps)
        self.cause = cause

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["failed_step"] = self.failed_step
        data["completed_steps"] = list(self.completed_steps)
        if self.cause is not None:
            data["cause"] = self.cause.to_dict()
        return data
