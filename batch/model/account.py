"""계좌 단위 처리 결과 및 스케줄 상태 모델"""

import traceback
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict


class AccountResultStatus(str, Enum):
    """계좌 처리 결과 상태 (SKIPPED는 처리 전 자리표시 값 겸용)"""
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


class EligibleAccount(BaseModel):
    """계좌 선정 결과 (처리 대상 계좌)"""
    account_id: str
    account_number: str | None = None
    account_type: str
    posting_frequency: str | None = None
    status_id: str | None = None


class AccountResult(BaseModel):
    """실행별 계좌 처리 결과"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    execution_id: str
    account_id: str
    account_number: str | None = None
    account_type: str | None = None
    interest_calculated: Decimal | None = None
    interest_posted: Decimal | None = None
    tax_amount: Decimal | None = None
    processing_time_ms: int | None = None
    status: AccountResultStatus
    error_message: str | None = None
    error_details: dict[str, Any] | None = None
    created_at: datetime | None = None


class AccountStatus(BaseModel):
    """계좌별 이자 스케줄 상태 (실행과 무관하게 유지)"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    account_id: str
    account_type: str
    account_number: str | None = None
    last_accrual_date: date | None = None
    last_posting_date: date | None = None
    next_posting_date: date | None = None
    accrual_frequency: str
    posting_frequency: str
    status: str
    error_count: int = 0
    last_error_message: str | None = None
    last_successful_run: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class CalculationOutcome(BaseModel):
    """잡 핸들러가 정규화한 계좌별 계산 결과"""
    success: bool
    interest_calculated: Decimal | None = None
    interest_posted: Decimal | None = None
    tax_amount: Decimal | None = None
    effective_date: date | None = None
    error_message: str | None = None
    error_details: dict[str, Any] | None = None

    @classmethod
    def from_exception(cls, error: BaseException) -> "CalculationOutcome":
        """예외를 FAILED 결과로 변환"""
        return cls(
            success=False,
            error_message=str(error) or type(error).__name__,
            error_details={
                "type": type(error).__name__,
                "stack": "".join(traceback.format_exception(error)),
            },
        )


@dataclass
class LedgerUpdate:
    """성공 시 계좌 스케줄 상태에 반영할 날짜"""
    last_accrual_date: date | None = None
    last_posting_date: date | None = None
    next_posting_date: date | None = None
