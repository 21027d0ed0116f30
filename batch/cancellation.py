"""실행 취소"""

import logging

from database.base import BaseDatabase
from batch.exception import ExecutionNotFoundError
from batch.model import Execution
from batch.recorder import CANCELLED_MESSAGE, ResultRecorder
from batch.timeutil import utcnow
from batch.tracker import ExecutionTracker

logger = logging.getLogger(__name__)


class CancellationController:
    """
    RUNNING 실행을 CANCELLED로 전이하고 미확정 결과를 SKIPPED로 정리

    처리 중인 계좌 작업을 중단시키지는 않는다. 작업자는 결과 확정 직전에 실행 상태를 다시 확인하므로
    취소 이후에 SUCCESS/FAILED가 덮어써지지 않는다.
    """

    def __init__(self, db: BaseDatabase, tracker: ExecutionTracker, recorder: ResultRecorder):
        self._db = db
        self._tracker = tracker
        self._recorder = recorder

    async def cancel(self, execution_id: str) -> Execution:
        """
        실행 취소

        Raises:
            ExecutionNotFoundError: 실행이 없는 경우
        """
        execution = await self._tracker.get(execution_id)
        if execution is None:
            raise ExecutionNotFoundError(execution_id)
        if execution.is_terminal:
            logger.debug(f"Execution {execution_id} already {execution.status.value}, cancel ignored")
            return execution

        async with self._db.transaction():
            cancelled = await self._tracker.mark_cancelled(
                execution_id,
                {'message': CANCELLED_MESSAGE, 'timestamp': utcnow().isoformat()},
            )
            if cancelled:
                await self._recorder.sweep_cancelled(execution_id)

        return await self._tracker.get(execution_id)
