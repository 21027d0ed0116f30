"""배치 잡 설정 모델 정의"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class JobType(str, Enum):
    """배치 잡 종류"""
    DAILY_INTEREST_ACCRUAL = "DAILY_INTEREST_ACCRUAL"
    INTEREST_POSTING = "INTEREST_POSTING"


DEFAULT_ACCOUNT_TYPES = ["SAVINGS", "FIXED_DEPOSIT", "RECURRING_DEPOSIT"]


class JobConfig(BaseModel):
    """잡 타입별 배치 설정 엔티티"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    job_type: JobType
    batch_size: int = Field(gt=0)
    max_retries: int = Field(ge=0)
    retry_interval_minutes: int
    timeout_seconds: int
    parallel_threads: int = Field(ge=1)
    enabled: bool
    description: str | None = None
    account_types: list[str] = Field(min_length=1)
    parameters: dict[str, Any] = Field(default_factory=dict)
    cron_expression: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class JobConfigCreate(BaseModel):
    """배치 설정 생성 요청"""
    job_type: JobType
    batch_size: int = Field(default=1000, gt=0)
    max_retries: int = Field(default=3, ge=0)
    retry_interval_minutes: int = Field(default=15, ge=0)
    timeout_seconds: int = Field(default=3600, gt=0)
    parallel_threads: int = Field(default=4, ge=1)
    enabled: bool = True
    description: str | None = Field(default=None, max_length=500)
    account_types: list[str] = Field(default_factory=lambda: list(DEFAULT_ACCOUNT_TYPES), min_length=1)
    parameters: dict[str, Any] = Field(default_factory=dict)
    cron_expression: str | None = Field(default=None, max_length=100)


class JobConfigUpdate(BaseModel):
    """
    배치 설정 수정 요청

    요청에 포함된 필드만 반영한다. NOT NULL 컬럼에 null을 보내면 기존 값을 유지하고,
    description/cron_expression은 null로 지울 수 있다.
    """
    batch_size: int | None = Field(default=None, gt=0)
    max_retries: int | None = Field(default=None, ge=0)
    retry_interval_minutes: int | None = Field(default=None, ge=0)
    timeout_seconds: int | None = Field(default=None, gt=0)
    parallel_threads: int | None = Field(default=None, ge=1)
    enabled: bool | None = None
    description: str | None = Field(default=None, max_length=500)
    account_types: list[str] | None = Field(default=None, min_length=1)
    parameters: dict[str, Any] | None = None
    cron_expression: str | None = Field(default=None, max_length=100)
