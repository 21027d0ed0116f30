"""
시각/날짜 직렬화 헬퍼

DB에는 UTC 기준 naive 문자열로 저장한다 (문자열 비교로 범위 조회 가능).
"""

from datetime import date, datetime, timezone

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f"


def utcnow() -> datetime:
    """현재 UTC 시각 (tzinfo 없음)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def utctoday() -> date:
    return utcnow().date()


def format_timestamp(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.strftime(TIMESTAMP_FORMAT)


def format_date(value: date | None) -> str | None:
    return value.isoformat() if value is not None else None


def elapsed_ms(started_at: datetime, finished_at: datetime) -> int:
    if started_at.tzinfo is not None:
        started_at = started_at.astimezone(timezone.utc).replace(tzinfo=None)
    return int((finished_at - started_at).total_seconds() * 1000)
