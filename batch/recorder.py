"""계좌별 처리 결과 기록"""

import json
import logging
import uuid
from datetime import datetime
from decimal import Decimal

from aiosql.queries import Queries

from database.base import BaseDatabase
from batch.model import (
    AccountResult,
    AccountResultStatus,
    CalculationOutcome,
    EligibleAccount,
    PageResult,
)
from batch.timeutil import format_timestamp, utcnow

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "cancelled by user"

# NUMERIC 컬럼은 REAL로 읽힐 수 있음
_AMOUNT_COLUMNS = ('interest_calculated', 'interest_posted', 'tax_amount')


def _amount(value: Decimal | None) -> str | None:
    return str(value) if value is not None else None


class ResultRecorder:
    """
    interest_batch_account_result 저장소

    계산 호출 전에 SKIPPED 자리표시 행을 넣고, 결과가 나오면 같은 행을 SUCCESS/FAILED로 갱신한다.
    """

    def __init__(self, db: BaseDatabase, queries: Queries):
        self._db = db
        self._queries = queries

    @staticmethod
    def _row_to_result(row) -> AccountResult:
        data = dict(row)
        data['execution_id'] = data.pop('batch_execution_id')
        for key in _AMOUNT_COLUMNS:
            if isinstance(data.get(key), float):
                data[key] = Decimal(str(data[key]))
        if data.get('error_details'):
            data['error_details'] = json.loads(data['error_details'])
        return AccountResult.model_validate(data)

    async def add_placeholder(self, execution_id: str, account: EligibleAccount) -> tuple[str, datetime]:
        """자리표시 행 삽입, (result_id, created_at) 반환"""
        result_id = str(uuid.uuid4())
        created_at = utcnow()
        async with self._db.transaction() as ctx:
            await self._queries.insert_placeholder_result(
                ctx.connection,
                id=result_id,
                execution_id=execution_id,
                account_id=account.account_id,
                account_number=account.account_number,
                account_type=account.account_type,
                created_at=format_timestamp(created_at),
            )
        return result_id, created_at

    async def save(
        self,
        result_id: str,
        execution_id: str,
        account: EligibleAccount,
        outcome: CalculationOutcome,
        processing_time_ms: int,
        created_at: datetime,
    ) -> None:
        """결과 확정 (자리표시 행이 없으면 새로 삽입)"""
        status = AccountResultStatus.SUCCESS if outcome.success else AccountResultStatus.FAILED
        async with self._db.transaction() as ctx:
            await self._queries.save_result(
                ctx.connection,
                id=result_id,
                execution_id=execution_id,
                account_id=account.account_id,
                account_number=account.account_number,
                account_type=account.account_type,
                interest_calculated=_amount(outcome.interest_calculated),
                interest_posted=_amount(outcome.interest_posted),
                tax_amount=_amount(outcome.tax_amount),
                processing_time_ms=processing_time_ms,
                status=status.value,
                error_message=outcome.error_message,
                error_details=json.dumps(outcome.error_details) if outcome.error_details else None,
                created_at=format_timestamp(created_at),
            )

    async def sweep_cancelled(self, execution_id: str) -> int:
        """SUCCESS/FAILED가 아닌 결과를 일괄 SKIPPED 처리, 변경 행 수 반환"""
        async with self._db.transaction() as ctx:
            count = await self._queries.sweep_unresolved_results(
                ctx.connection, execution_id=execution_id, message=CANCELLED_MESSAGE
            )
        logger.info(f"Swept {count} unresolved results for cancelled execution {execution_id}")
        return count

    async def get(self, result_id: str) -> AccountResult | None:
        async with self._db.transaction(readonly=True) as ctx:
            row = await self._queries.get_result_by_id(ctx.connection, result_id=result_id)
        return self._row_to_result(row) if row else None

    async def list_results(
        self,
        execution_id: str,
        status: AccountResultStatus | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> PageResult[AccountResult]:
        """실행별 결과 조회 (created_at 역순)"""
        status_value = status.value if status else None
        async with self._db.transaction(readonly=True) as ctx:
            conn = ctx.connection
            total = await self._queries.count_results(conn, execution_id=execution_id, status=status_value)
            rows = await self._queries.get_results_paged(
                conn, execution_id=execution_id, status=status_value, limit=limit, offset=offset
            )
        return PageResult[AccountResult](
            data=[self._row_to_result(row) for row in rows],
            total_count=total or 0,
        )

    async def stats_since(self, since: datetime) -> dict:
        """since 이후 생성된 결과 집계"""
        since_text = format_timestamp(since)
        async with self._db.transaction(readonly=True) as ctx:
            row = await self._queries.get_today_result_stats(ctx.connection, since=since_text)
            amounts = await self._queries.get_today_posted_amounts(ctx.connection, since=since_text)

        avg = row['avg_processing_time_ms'] if row else None
        return {
            'processed': row['processed'] if row else 0,
            'interest_posted': sum((Decimal(a['interest_posted']) for a in amounts), Decimal('0')),
            'failed': row['failed'] if row else 0,
            'avg_processing_time_ms': round(avg) if avg is not None else None,
        }
