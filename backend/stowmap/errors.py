"""Engine error taxonomy.

Every failure the engine reports is an ``EngineError``: an ``HTTPException``
with a stable machine-readable ``code`` so clients can branch on the kind of
failure instead of parsing the message.
"""

from fastapi import HTTPException, status


class EngineError(HTTPException):
    code = "engine_error"
    status_code = status.HTTP_400_BAD_REQUEST
    retryable = False

    def __init__(self, detail: str, retryable: bool | None = None):
        super().__init__(status_code=self.status_code, detail=detail)
        if retryable is not None:
            self.retryable = retryable


class Unauthorized(EngineError):
    code = "unauthorized"
    status_code = status.HTTP_401_UNAUTHORIZED


class Forbidden(EngineError):
    code = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN


class NotFound(EngineError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class NotLocked(EngineError):
    code = "not_locked"
    status_code = status.HTTP_409_CONFLICT


class LockedByOther(EngineError):
    code = "locked_by_other"
    status_code = status.HTTP_423_LOCKED


class InventoryConflict(EngineError):
    code = "inventory_conflict"
    status_code = status.HTTP_409_CONFLICT


class GridShrinkBlocked(InventoryConflict):
    code = "grid_shrink_blocked"


class SplitBlocked(InventoryConflict):
    code = "split_blocked"


class UnsupportedRotation(EngineError):
    code = "unsupported_rotation"


class ValidationError(EngineError):
    code = "validation_error"


class NoSplitTarget(ValidationError):
    code = "no_split_target"


class SplitTooNarrow(ValidationError):
    code = "split_too_narrow"


class CrossBlueprintNotAllowed(EngineError):
    code = "cross_blueprint_not_allowed"


class StorageError(EngineError):
    code = "storage_error"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
