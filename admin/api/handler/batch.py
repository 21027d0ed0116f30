"""이자 배치 Admin 비즈니스 로직 핸들러"""

import logging
from datetime import datetime

from batch import InterestBatchEngine
from batch.model import (
    AccountResult,
    AccountResultStatus,
    AccountStatus,
    Execution,
    ExecutionFilter,
    ExecutionStatus,
    JobConfig,
    JobConfigCreate,
    JobConfigUpdate,
    JobType,
)
from dispatcher import CronIntervalTooShortError, CronParseError, validate_cron_expression
from admin.exception import AccountStatusNotFoundError, ConfigValidationError

logger = logging.getLogger(__name__)


class InterestBatchHandler:
    """페이지 번호를 limit/offset으로 바꾸고 설정 입력을 검증한 뒤 엔진에 위임"""

    def __init__(self, engine: InterestBatchEngine, min_cron_interval_seconds: int = 60):
        self._engine = engine
        self._min_cron_interval_seconds = min_cron_interval_seconds

    def validate_cron_expression(self, cron_expr: str | None) -> None:
        """크론 표현식 유효성 검사 (None은 스케줄 없음)"""
        if cron_expr is None:
            return
        try:
            validate_cron_expression(cron_expr, self._min_cron_interval_seconds)
        except (CronParseError, CronIntervalTooShortError) as e:
            raise ConfigValidationError(e.message)

    async def trigger(
        self,
        job_type: str,
        parameters: dict | None = None,
        account_ids: list[str] | None = None,
    ) -> Execution:
        return await self._engine.trigger_job(job_type, parameters, account_ids)

    async def get_execution_list(
        self,
        page: int = 1,
        size: int = 20,
        job_type: JobType | None = None,
        status: ExecutionStatus | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
    ) -> tuple[list[Execution], int]:
        """실행 이력 목록 조회"""
        result = await self._engine.list_executions(
            ExecutionFilter(job_type=job_type, status=status, date_from=date_from, date_to=date_to),
            limit=size,
            offset=(page - 1) * size,
        )
        return result.data, result.total_count

    async def get_execution(self, execution_id: str) -> Execution | None:
        return await self._engine.get_execution(execution_id)

    async def cancel(self, execution_id: str) -> Execution:
        execution = await self._engine.cancel_execution(execution_id)
        logger.info(f"Cancel requested via admin: {execution_id} -> {execution.status.value}")
        return execution

    async def get_result_list(
        self,
        execution_id: str,
        page: int = 1,
        size: int = 100,
        status: AccountResultStatus | None = None,
    ) -> tuple[list[AccountResult], int]:
        """실행별 계좌 결과 목록 조회"""
        result = await self._engine.get_account_results(
            execution_id, status, limit=size, offset=(page - 1) * size
        )
        return result.data, result.total_count

    async def get_account_status(self, account_id: str) -> AccountStatus:
        status = await self._engine.get_account_status(account_id)
        if status is None:
            raise AccountStatusNotFoundError(account_id)
        return status

    async def create_config(self, request: JobConfigCreate) -> JobConfig:
        self.validate_cron_expression(request.cron_expression)
        return await self._engine.create_config(request)

    async def update_config(self, job_type: JobType, request: JobConfigUpdate) -> JobConfig:
        if 'cron_expression' in request.model_fields_set:
            self.validate_cron_expression(request.cron_expression)
        return await self._engine.update_config(job_type, request)
