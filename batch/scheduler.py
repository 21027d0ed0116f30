"""
BatchScheduler: 실행 하나의 계좌 처리 루프

선정된 계좌를 batch_size 단위 청크로 나눠 순서대로 처리한다.
청크 안에서는 parallel_threads 크기의 하위 배치로 나눠 동시에 처리하고,
하위 배치가 모두 끝나야 다음 하위 배치(다음 청크)로 넘어간다.
"""

import asyncio
import logging
import traceback
from collections.abc import Iterator, Sequence
from datetime import datetime
from typing import Any
from uuid import uuid4

from database.base import BaseDatabase
from batch.base import BaseJobHandler
from batch.calculator import InterestCalculator
from batch.exception import OrchestrationError
from batch.ledger import AccountStatusLedger
from batch.model import CalculationOutcome, EligibleAccount, Execution, JobConfig
from batch.recorder import ResultRecorder
from batch.selector import AccountSelector
from batch.timeutil import elapsed_ms, utcnow
from batch.tracker import ExecutionTracker

logger = logging.getLogger(__name__)

SHUTDOWN_MESSAGE = "interrupted by engine shutdown"


def chunked(items: Sequence[Any], size: int) -> Iterator[Sequence[Any]]:
    """size 단위로 순서대로 자른 구간"""
    for start in range(0, len(items), size):
        yield items[start:start + size]


class BatchScheduler:
    """청크/하위 배치 단위 병렬 처리"""

    def __init__(
        self,
        db: BaseDatabase,
        calculator: InterestCalculator,
        selector: AccountSelector,
        tracker: ExecutionTracker,
        recorder: ResultRecorder,
        ledger: AccountStatusLedger,
    ):
        self._db = db
        self._calculator = calculator
        self._selector = selector
        self._tracker = tracker
        self._recorder = recorder
        self._ledger = ledger

    async def run(self, execution: Execution, config: JobConfig, handler: BaseJobHandler) -> None:
        """
        실행 하나를 끝까지 처리

        계좌 단위 밖에서 난 예외는 실행을 FAILED로 종료시키고 다시 던지지 않는다.
        """
        execution_id = execution.id
        try:
            try:
                accounts = await self._selector.select(handler, config, execution.batch_parameters)
            except Exception as e:
                raise OrchestrationError(execution_id, "account selection", str(e)) from e

            await self._tracker.set_total(execution_id, len(accounts))

            chunks = list(chunked(accounts, config.batch_size))
            logger.info(
                f"Execution {execution_id}: {len(accounts)} accounts in {len(chunks)} chunks "
                f"(batch_size={config.batch_size}, parallel_threads={config.parallel_threads})"
            )

            for index, chunk in enumerate(chunks, start=1):
                if not await self._process_chunk(execution_id, handler, chunk, config.parallel_threads):
                    logger.info(f"Execution {execution_id} is no longer running, stopped at chunk {index}")
                    return
                logger.debug(f"Execution {execution_id}: chunk {index}/{len(chunks)} done ({len(chunk)} accounts)")

            await self._tracker.complete(execution_id)

        except asyncio.CancelledError as e:
            # 종료 타임아웃으로 태스크가 취소됨
            logger.warning(f"Execution {execution_id} cancelled by shutdown")
            await self._mark_failed(execution_id, SHUTDOWN_MESSAGE, e)
            raise

        except Exception as e:
            logger.error(f"Execution {execution_id} failed: {e}", exc_info=True)
            await self._mark_failed(execution_id, getattr(e, 'message', None) or str(e), e)

    async def _mark_failed(self, execution_id: str, message: str, error: BaseException) -> None:
        error_details = {
            'message': message,
            'stack': ''.join(traceback.format_exception(error)),
            'timestamp': utcnow().isoformat(),
        }
        try:
            await self._tracker.fail(execution_id, error_details)
        except Exception as fail_error:
            logger.error(f"Failed to mark execution {execution_id} as FAILED: {fail_error}", exc_info=True)

    async def _process_chunk(
        self,
        execution_id: str,
        handler: BaseJobHandler,
        chunk: Sequence[EligibleAccount],
        parallel_threads: int,
    ) -> bool:
        """청크 처리, 중간에 실행이 종료(취소)되면 False"""
        width = min(parallel_threads, len(chunk))
        for sub_batch in chunked(chunk, width):
            if not await self._tracker.is_running(execution_id):
                return False
            await asyncio.gather(
                *(self._process_account(execution_id, handler, account) for account in sub_batch)
            )
        return True

    async def _process_account(
        self,
        execution_id: str,
        handler: BaseJobHandler,
        account: EligibleAccount,
    ) -> None:
        """계좌 하나 처리 (예외를 밖으로 내보내지 않음)"""
        started_at = utcnow()
        result_id: str | None = None
        created_at = started_at

        try:
            result_id, created_at = await self._recorder.add_placeholder(execution_id, account)

            try:
                outcome = await handler.calculate(self._calculator, account)
            except Exception as e:
                logger.warning(f"Calculation error for account {account.account_id}: {e}")
                outcome = CalculationOutcome.from_exception(e)

            await self._commit(
                execution_id, handler, account, result_id, created_at,
                outcome, elapsed_ms(started_at, utcnow()),
            )
        except Exception as e:
            logger.error(f"Failed to persist result for account {account.account_id}: {e}", exc_info=True)
            await self._commit_failure(execution_id, handler, account, result_id, created_at, e, started_at)

    async def _commit(
        self,
        execution_id: str,
        handler: BaseJobHandler,
        account: EligibleAccount,
        result_id: str,
        created_at: datetime,
        outcome: CalculationOutcome,
        processing_time_ms: int,
    ) -> None:
        """
        결과, 카운터, 계좌 상태를 한 트랜잭션으로 반영

        실행이 이미 RUNNING이 아니면 결과 행과 카운터는 건드리지 않는다.
        계좌 상태는 외부 호출 결과를 그대로 반영한다.
        """
        async with self._db.transaction():
            if await self._tracker.is_running(execution_id):
                await self._recorder.save(
                    result_id, execution_id, account, outcome, processing_time_ms, created_at
                )
                await self._tracker.increment(execution_id, outcome.success)
            else:
                logger.info(
                    f"Execution {execution_id} is no longer running, "
                    f"result for account {account.account_id} not recorded"
                )

            if outcome.success:
                await self._ledger.record_success(account, handler.ledger_update(account, outcome))
            else:
                await self._ledger.record_failure(account, outcome.error_message)

    async def _commit_failure(
        self,
        execution_id: str,
        handler: BaseJobHandler,
        account: EligibleAccount,
        result_id: str | None,
        created_at: datetime,
        error: Exception,
        started_at: datetime,
    ) -> None:
        """저장 실패를 FAILED 결과로 다시 기록 (이마저 실패하면 로그만 남김)"""
        outcome = CalculationOutcome.from_exception(error)
        try:
            await self._commit(
                execution_id, handler, account, result_id or str(uuid4()), created_at,
                outcome, elapsed_ms(started_at, utcnow()),
            )
        except Exception as e:
            logger.error(f"Could not record failure for account {account.account_id}: {e}", exc_info=True)
