"""이자 계산 서비스 응답 모델

계산 서비스는 camelCase(interestCalculated)로 응답하고, 테스트/내부 호출은 snake_case를 쓴다.
"""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class AccrualResult(BaseModel):
    """일일 이자 계산 응답"""
    model_config = ConfigDict(extra='ignore', alias_generator=to_camel, populate_by_name=True)

    success: bool
    interest_calculated: Decimal | None = None
    calculation_date: date | None = None
    error_message: str | None = None


class PostingResult(BaseModel):
    """이자 지급 응답"""
    model_config = ConfigDict(extra='ignore', alias_generator=to_camel, populate_by_name=True)

    success: bool
    interest_posted: Decimal | None = None
    tax_amount: Decimal | None = None
    posting_date: date | None = None
    error_message: str | None = None
