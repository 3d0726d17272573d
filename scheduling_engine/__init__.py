"""Clinic slot scheduling and availability engine."""

from .engine import SchedulingEngine, create_engine
from .exceptions import ErrorCode
from .models.results import OperationResult

__all__ = ["ErrorCode", "OperationResult", "SchedulingEngine", "create_engine"]
