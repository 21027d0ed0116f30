"""
배치 실행(Execution) 생명주기 관리

RUNNING -> COMPLETED / FAILED / CANCELLED 전이와 카운터 증가를 담당한다.
종료 전이는 모두 `WHERE status = 'RUNNING'` 조건으로 수행하므로 한 번만 성공한다.
"""

import json
import logging
import uuid
from datetime import datetime
from typing import Any

import aiosqlite
from aiosql.queries import Queries

from database.base import BaseDatabase
from batch.exception import JobConflictError
from batch.model import Execution, ExecutionFilter, ExecutionStatus, PageResult
from batch.timeutil import elapsed_ms, format_timestamp, utcnow

logger = logging.getLogger(__name__)


class ExecutionTracker:
    """interest_batch_execution 저장소"""

    def __init__(self, db: BaseDatabase, queries: Queries):
        self._db = db
        self._queries = queries

    @staticmethod
    def _row_to_execution(row) -> Execution:
        data = dict(row)
        data['batch_parameters'] = json.loads(data['batch_parameters'] or '{}')
        if data.get('error_details'):
            data['error_details'] = json.loads(data['error_details'])
        return Execution.model_validate(data)

    async def start(self, job_type: str, parameters: dict[str, Any]) -> Execution:
        """
        RUNNING 실행 생성

        Raises:
            JobConflictError: 같은 잡 타입의 RUNNING 실행이 이미 있는 경우 (행 생성 없음)
        """
        execution_id = str(uuid.uuid4())
        try:
            async with self._db.transaction() as ctx:
                conn = ctx.connection
                running = await self._queries.count_running_by_type(conn, job_type=job_type)
                if running:
                    raise JobConflictError(job_type)
                await self._queries.insert_execution(
                    conn,
                    id=execution_id,
                    job_type=job_type,
                    started_at=format_timestamp(utcnow()),
                    batch_parameters=json.dumps(parameters, default=str),
                )
        except aiosqlite.IntegrityError as e:
            # 부분 유니크 인덱스 위반 (동시 트리거)
            raise JobConflictError(job_type) from e

        logger.info(f"Execution started: {execution_id} ({job_type})")
        return await self.get(execution_id)

    async def get(self, execution_id: str) -> Execution | None:
        async with self._db.transaction(readonly=True) as ctx:
            row = await self._queries.get_execution_by_id(ctx.connection, execution_id=execution_id)
        return self._row_to_execution(row) if row else None

    async def is_running(self, execution_id: str) -> bool:
        async with self._db.transaction(readonly=True) as ctx:
            status = await self._queries.get_execution_status(ctx.connection, execution_id=execution_id)
        return status == ExecutionStatus.RUNNING.value

    async def set_total(self, execution_id: str, total_accounts: int) -> None:
        async with self._db.transaction() as ctx:
            await self._queries.set_total_accounts(
                ctx.connection,
                execution_id=execution_id,
                total_accounts=total_accounts,
                now=format_timestamp(utcnow()),
            )

    async def increment(self, execution_id: str, success: bool) -> bool:
        """processed와 successful/failed 중 하나를 원자적으로 1 증가 (RUNNING일 때만)"""
        async with self._db.transaction() as ctx:
            count = await self._queries.increment_counters(
                ctx.connection,
                execution_id=execution_id,
                succeeded=1 if success else 0,
                failed=0 if success else 1,
                now=format_timestamp(utcnow()),
            )
        return count > 0

    async def _finish(
        self,
        execution_id: str,
        status: ExecutionStatus,
        error_details: dict[str, Any] | None = None,
    ) -> bool:
        async with self._db.transaction() as ctx:
            conn = ctx.connection
            row = await self._queries.get_execution_by_id(conn, execution_id=execution_id)
            if not row or row['status'] != ExecutionStatus.RUNNING.value:
                return False

            completed_at = utcnow()
            started_at = datetime.fromisoformat(row['started_at'])
            count = await self._queries.finish_execution(
                conn,
                execution_id=execution_id,
                status=status.value,
                completed_at=format_timestamp(completed_at),
                execution_time_ms=elapsed_ms(started_at, completed_at),
                error_details=json.dumps(error_details, default=str) if error_details else None,
            )
        return count > 0

    async def complete(self, execution_id: str) -> bool:
        finished = await self._finish(execution_id, ExecutionStatus.COMPLETED)
        if finished:
            logger.info(f"Execution completed: {execution_id}")
        return finished

    async def fail(self, execution_id: str, error_details: dict[str, Any]) -> bool:
        finished = await self._finish(execution_id, ExecutionStatus.FAILED, error_details)
        if finished:
            logger.error(f"Execution failed: {execution_id} - {error_details.get('message')}")
        return finished

    async def mark_cancelled(self, execution_id: str, error_details: dict[str, Any]) -> bool:
        finished = await self._finish(execution_id, ExecutionStatus.CANCELLED, error_details)
        if finished:
            logger.info(f"Execution cancelled: {execution_id}")
        return finished

    async def list_executions(
        self,
        filter: ExecutionFilter | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> PageResult[Execution]:
        """실행 이력 조회 (started_at 역순)"""
        filter = filter or ExecutionFilter()
        params = {
            'job_type': filter.job_type.value if filter.job_type else None,
            'date_from': format_timestamp(filter.date_from),
            'date_to': format_timestamp(filter.date_to),
            'status': filter.status.value if filter.status else None,
        }
        async with self._db.transaction(readonly=True) as ctx:
            conn = ctx.connection
            total = await self._queries.count_executions(conn, **params)
            rows = await self._queries.get_executions_paged(conn, limit=limit, offset=offset, **params)
        return PageResult[Execution](
            data=[self._row_to_execution(row) for row in rows],
            total_count=total or 0,
        )

    async def last_completed(self) -> Execution | None:
        async with self._db.transaction(readonly=True) as ctx:
            row = await self._queries.get_last_completed_execution(ctx.connection)
        return self._row_to_execution(row) if row else None

    async def count_running(self) -> int:
        async with self._db.transaction(readonly=True) as ctx:
            count = await self._queries.count_running_executions(ctx.connection)
        return count or 0

    async def recover_interrupted(self) -> int:
        """
        프로세스 재시작 전 RUNNING으로 남은 실행을 FAILED로 정리

        처리 중이던 계좌의 SKIPPED 자리표시 행은 그대로 둔다.
        """
        async with self._db.transaction(readonly=True) as ctx:
            rows = await self._queries.get_running_executions(ctx.connection)

        recovered = 0
        for row in rows:
            details = {
                'message': 'interrupted by process restart',
                'timestamp': utcnow().isoformat(),
            }
            if await self.fail(row['id'], details):
                recovered += 1
        if recovered:
            logger.warning(f"Recovered {recovered} interrupted executions")
        return recovered
