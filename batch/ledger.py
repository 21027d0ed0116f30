"""계좌별 이자 스케줄 상태 (실행과 무관하게 계좌마다 한 행 유지)"""

import logging
import uuid

from aiosql.queries import Queries

from database.base import BaseDatabase
from batch.model import AccountStatus, EligibleAccount, LedgerUpdate
from batch.schedule import Frequency
from batch.timeutil import format_date, format_timestamp, utcnow

logger = logging.getLogger(__name__)


class AccountStatusLedger:
    """
    interest_batch_account_status 저장소

    처음 처리되는 계좌는 행을 새로 만들고, 이후에는 account_id 기준으로 갱신한다.
    성공 시 날짜를 전진시키고 error_count를 0으로, 실패 시 날짜는 두고 error_count만 1 증가시킨다.
    """

    def __init__(
        self,
        db: BaseDatabase,
        queries: Queries,
        default_accrual_frequency: str = Frequency.DAILY.value,
        default_posting_frequency: str = Frequency.MONTHLY.value,
    ):
        self._db = db
        self._queries = queries
        self._default_accrual_frequency = default_accrual_frequency
        self._default_posting_frequency = default_posting_frequency

    def _base_params(self, account: EligibleAccount) -> dict:
        return {
            'id': str(uuid.uuid4()),
            'account_id': account.account_id,
            'account_type': account.account_type,
            'account_number': account.account_number,
            'accrual_frequency': self._default_accrual_frequency,
            'posting_frequency': account.posting_frequency or self._default_posting_frequency,
            'now': format_timestamp(utcnow()),
        }

    async def record_success(self, account: EligibleAccount, update: LedgerUpdate) -> None:
        async with self._db.transaction() as ctx:
            await self._queries.record_status_success(
                ctx.connection,
                last_accrual_date=format_date(update.last_accrual_date),
                last_posting_date=format_date(update.last_posting_date),
                next_posting_date=format_date(update.next_posting_date),
                **self._base_params(account),
            )

    async def record_failure(self, account: EligibleAccount, error_message: str | None) -> None:
        async with self._db.transaction() as ctx:
            await self._queries.record_status_failure(
                ctx.connection,
                error_message=error_message,
                **self._base_params(account),
            )
        logger.debug(f"Account {account.account_id} error_count incremented")

    async def get(self, account_id: str) -> AccountStatus | None:
        async with self._db.transaction(readonly=True) as ctx:
            row = await self._queries.get_account_status(ctx.connection, account_id=account_id)
        return AccountStatus.model_validate(dict(row)) if row else None
