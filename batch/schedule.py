"""
이자 지급 주기 계산

relativedelta의 월/년 단위 연산을 그대로 따른다.
말일 기준 연산은 해당 월의 마지막 날로 맞춰진다 (예: 1/31 + 1개월 = 2/29 또는 2/28).
"""

from datetime import date
from enum import Enum

from dateutil.relativedelta import relativedelta


class Frequency(str, Enum):
    """이자 계산/지급 주기"""
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    BIWEEKLY = "BIWEEKLY"
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    BIANNUAL = "BIANNUAL"
    ANNUAL = "ANNUAL"


_STEPS: dict[str, relativedelta] = {
    Frequency.DAILY.value: relativedelta(days=1),
    Frequency.WEEKLY.value: relativedelta(days=7),
    Frequency.BIWEEKLY.value: relativedelta(days=14),
    Frequency.MONTHLY.value: relativedelta(months=1),
    Frequency.QUARTERLY.value: relativedelta(months=3),
    Frequency.BIANNUAL.value: relativedelta(months=6),
    Frequency.ANNUAL.value: relativedelta(years=1),
}


def next_posting_date(current: date, frequency: str | None) -> date:
    """
    다음 이자 지급일 계산

    Args:
        current: 기준일 (직전 지급일)
        frequency: 지급 주기 (대소문자 무시, 알 수 없는 값은 MONTHLY)

    Returns:
        다음 지급일
    """
    key = (frequency or "").strip().upper()
    step = _STEPS.get(key, _STEPS[Frequency.MONTHLY.value])
    return current + step
