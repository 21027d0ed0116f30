"""
처리 대상 계좌 선정

- 지정 계좌(specific_account_ids)가 있으면 그 중 활성 계좌만 (스케줄 상태 무시)
- 지급 잡은 지급일이 기준일 이전이거나 아직 없는 계좌
- 그 외에는 설정된 계좌 유형의 활성 계좌 전체
"""

import json
import logging
from datetime import date
from typing import Any

from aiosql.queries import Queries

from database.base import BaseDatabase
from batch.base import BaseJobHandler
from batch.model import EligibleAccount, JobConfig
from batch.timeutil import utctoday

logger = logging.getLogger(__name__)

SPECIFIC_ACCOUNT_IDS = 'specific_account_ids'
REFERENCE_DATE = 'reference_date'


def resolve_reference_date(parameters: dict[str, Any]) -> date:
    """
    실행 기준일 (parameters.reference_date, 없으면 오늘)

    Raises:
        ValueError: ISO 날짜 형식이 아닌 경우
    """
    value = parameters.get(REFERENCE_DATE)
    if value is None:
        return utctoday()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


class AccountSelector:
    """실행당 한 번 호출되어 처리 대상 계좌 목록을 만든다"""

    def __init__(self, db: BaseDatabase, queries: Queries):
        self._db = db
        self._queries = queries

    async def select(
        self,
        handler: BaseJobHandler,
        config: JobConfig,
        parameters: dict[str, Any],
    ) -> list[EligibleAccount]:
        account_ids = parameters.get(SPECIFIC_ACCOUNT_IDS)

        async with self._db.transaction(readonly=True) as ctx:
            conn = ctx.connection
            if account_ids:
                rows = await self._queries.select_specific_accounts(
                    conn, account_ids=json.dumps([str(a) for a in account_ids])
                )
                mode = 'specific'
            elif handler.due_only:
                reference_date = resolve_reference_date(parameters)
                rows = await self._queries.select_due_accounts(
                    conn,
                    account_types=json.dumps(config.account_types),
                    reference_date=reference_date.isoformat(),
                )
                mode = f'due<={reference_date.isoformat()}'
            else:
                rows = await self._queries.select_active_accounts(
                    conn, account_types=json.dumps(config.account_types)
                )
                mode = 'active'

        accounts = [EligibleAccount.model_validate(dict(row)) for row in rows]
        logger.info(f"Selected {len(accounts)} accounts for {config.job_type.value} ({mode})")
        return accounts
