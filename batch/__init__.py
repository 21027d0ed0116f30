"""이자 배치 엔진 패키지"""

from batch.engine import InterestBatchEngine, EngineConfig, create_engine
from batch.calculator import InterestCalculator, HttpInterestCalculator
from batch.exception import (
    BatchError,
    JobValidationError,
    JobConflictError,
    ExecutionNotFoundError,
    ConfigNotFoundError,
    ConfigDuplicateError,
    HandlerNotFoundError,
    CalculationError,
    OrchestrationError,
)

__all__ = [
    'InterestBatchEngine',
    'EngineConfig',
    'create_engine',
    'InterestCalculator',
    'HttpInterestCalculator',
    'BatchError',
    'JobValidationError',
    'JobConflictError',
    'ExecutionNotFoundError',
    'ConfigNotFoundError',
    'ConfigDuplicateError',
    'HandlerNotFoundError',
    'CalculationError',
    'OrchestrationError',
]
