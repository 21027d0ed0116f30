"""이자 배치 모델 패키지"""

from batch.model.config import JobType, JobConfig, JobConfigCreate, JobConfigUpdate
from batch.model.execution import (
    ExecutionStatus,
    Execution,
    ExecutionFilter,
    PageResult,
    BatchSummary,
)
from batch.model.account import (
    AccountResultStatus,
    EligibleAccount,
    AccountResult,
    AccountStatus,
    CalculationOutcome,
    LedgerUpdate,
)
from batch.model.calculation import AccrualResult, PostingResult

__all__ = [
    'JobType',
    'JobConfig',
    'JobConfigCreate',
    'JobConfigUpdate',
    'ExecutionStatus',
    'Execution',
    'ExecutionFilter',
    'PageResult',
    'BatchSummary',
    'AccountResultStatus',
    'EligibleAccount',
    'AccountResult',
    'AccountStatus',
    'CalculationOutcome',
    'LedgerUpdate',
    'AccrualResult',
    'PostingResult',
]
