"""배치 실행 이력 모델 정의"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from batch.model.config import JobConfig, JobType

T = TypeVar('T')


class ExecutionStatus(str, Enum):
    """배치 실행 상태"""
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class Execution(BaseModel):
    """배치 실행 엔티티"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    job_type: JobType
    started_at: datetime
    completed_at: datetime | None = None
    status: ExecutionStatus
    total_accounts: int = 0
    processed_accounts: int = 0
    successful_accounts: int = 0
    failed_accounts: int = 0
    execution_time_ms: int | None = None
    batch_parameters: dict[str, Any] = Field(default_factory=dict)
    error_details: dict[str, Any] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status != ExecutionStatus.RUNNING


class ExecutionFilter(BaseModel):
    """실행 이력 조회 필터"""
    job_type: JobType | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    status: ExecutionStatus | None = None


class PageResult(BaseModel, Generic[T]):
    """페이징 조회 결과"""
    data: list[T]
    total_count: int


class BatchSummary(BaseModel):
    """운영 대시보드용 배치 요약"""
    accounts_processed_today: int = 0
    interest_posted_today: Decimal = Decimal("0")
    failed_accounts_today: int = 0
    avg_processing_time_ms: int | None = None
    last_completed_run: Execution | None = None
    current_running_jobs: int = 0
    job_configurations: list[JobConfig] = Field(default_factory=list)
