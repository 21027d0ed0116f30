"""이자 배치 Admin API 요청/응답 모델"""

from typing import Any

from pydantic import BaseModel, Field

from batch.model import JobType


class TriggerJobRequest(BaseModel):
    """배치 실행 요청"""
    job_type: str = Field(description="잡 타입 (DAILY_INTEREST_ACCRUAL, INTEREST_POSTING)")
    parameters: dict[str, Any] | None = None
    account_ids: list[str] | None = Field(default=None, description="지정 계좌 (스케줄 무시)")


class JobTypeInfo(BaseModel):
    """지원 잡 타입"""
    job_type: JobType
    description: str
