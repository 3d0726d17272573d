"""
Typed operation results returned across the engine boundary.

Every public service operation returns an ``OperationResult`` instead of
raising. Internally, services raise ``SchedulingError`` subclasses; the
``service_operation`` decorator converts them here.
"""
import functools
import logging
from typing import Any, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from ..exceptions import ErrorCode, LockAcquisitionError, SchedulingError

logger = logging.getLogger(__name__)

T = TypeVar('T')


class OperationResult(BaseModel, Generic[T]):
    """
    Standard result wrapper:
    {"success": true, "data": ..., "error_code": null, "message": null, "conflicts": []}
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    success: bool
    data: Optional[T] = None
    error_code: Optional[ErrorCode] = None
    message: Optional[str] = None
    conflicts: List[Any] = Field(default_factory=list)

    @classmethod
    def ok(cls, data: Any = None, message: Optional[str] = None) -> "OperationResult":
        return cls(success=True, data=data, message=message)

    @classmethod
    def fail(
        cls,
        error_code: ErrorCode,
        message: str,
        conflicts: Optional[List[Any]] = None
    ) -> "OperationResult":
        return cls(
            success=False,
            error_code=error_code,
            message=message,
            conflicts=list(conflicts or [])
        )


def _format_validation_error(error: PydanticValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(loc) for loc in item.get("loc", ()))
        parts.append(f"{location}: {item.get('msg')}" if location else item.get("msg", ""))
    return "; ".join(parts) or str(error)


def service_operation(func):
    """
    Wrap an async service method so it always returns an OperationResult.

    - SchedulingError -> typed failure carrying its error code (and conflicts)
    - pydantic ValidationError -> validation_error
    - LockAcquisitionError -> invalid_state, the caller may retry
    - anything else -> logged with traceback, internal_error
    """
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            result = await func(*args, **kwargs)
        except SchedulingError as e:
            logger.warning(f"{func.__qualname__} rejected [{e.code.value}]: {e.message}")
            return OperationResult.fail(e.code, e.message, getattr(e, "conflicts", None))
        except PydanticValidationError as e:
            message = _format_validation_error(e)
            logger.warning(f"{func.__qualname__} validation failed: {message}")
            return OperationResult.fail(ErrorCode.VALIDATION_ERROR, message)
        except LockAcquisitionError as e:
            logger.warning(f"{func.__qualname__} could not lock schedule: {e}")
            return OperationResult.fail(ErrorCode.INVALID_STATE, str(e))
        except Exception as e:
            logger.exception(f"Unexpected error in {func.__qualname__}: {e}")
            return OperationResult.fail(ErrorCode.INTERNAL_ERROR, "Internal scheduling error")

        if isinstance(result, OperationResult):
            return result
        return OperationResult.ok(result)

    return wrapper
