"""
InterestBatchEngine: 이자 배치 엔진

잡 설정 검증, 실행 생성, 백그라운드 처리 태스크 관리와 조회/취소/설정 관리 연산을 제공합니다.

사용 예시:
    db = get_db('default')
    engine = InterestBatchEngine(db, HttpInterestCalculator(base_url), EngineConfig())
    execution = await engine.trigger_job('DAILY_INTEREST_ACCRUAL')
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, time
from pathlib import Path
from typing import Any

from aiosql.queries import Queries

from database.base import BaseDatabase
from database.context import detach_all
from batch.base import BaseJobHandler, get_job_handler
from batch.calculator import InterestCalculator
from batch.cancellation import CancellationController
from batch.config_store import JobConfigStore
from batch.exception import HandlerNotFoundError, JobValidationError
from batch.ledger import AccountStatusLedger
from batch.model import (
    AccountResult,
    AccountResultStatus,
    AccountStatus,
    BatchSummary,
    Execution,
    ExecutionFilter,
    JobConfig,
    JobConfigCreate,
    JobConfigUpdate,
    JobType,
    PageResult,
)
from batch.recorder import ResultRecorder
from batch.scheduler import BatchScheduler
from batch.selector import SPECIFIC_ACCOUNT_IDS, AccountSelector, resolve_reference_date
from batch.tracker import ExecutionTracker
from batch.timeutil import utcnow

logger = logging.getLogger(__name__)

SQL_DIR = Path(__file__).parent / "sql"


@dataclass
class EngineConfig:
    """이자 배치 엔진 설정"""
    database: str = "default"  # database.yaml에 정의된 이름
    shutdown_timeout_seconds: float = 30
    default_accrual_frequency: str = "DAILY"
    default_posting_frequency: str = "MONTHLY"
    calculator_base_url: str = "http://localhost:8080"
    calculator_api_key: str | None = None
    calculator_timeout_seconds: float = 30.0


class InterestBatchEngine:
    """
    이자 배치 엔진

    trigger_job은 실행 행을 저장한 뒤 처리 태스크를 띄우고 바로 반환한다.
    처리 결과는 get_execution / get_account_results로 폴링한다.
    """

    def __init__(
        self,
        db: BaseDatabase,
        calculator: InterestCalculator,
        config: EngineConfig | None = None,
    ):
        self._db = db
        self._calculator = calculator
        self._config = config or EngineConfig()
        self._running_tasks: set[asyncio.Task] = set()
        self._closed = False

        _load_handlers()
        queries = self._load_queries()

        self.configs = JobConfigStore(db, queries)
        self.tracker = ExecutionTracker(db, queries)
        self.recorder = ResultRecorder(db, queries)
        self.ledger = AccountStatusLedger(
            db,
            queries,
            default_accrual_frequency=self._config.default_accrual_frequency,
            default_posting_frequency=self._config.default_posting_frequency,
        )
        self.selector = AccountSelector(db, queries)
        self.scheduler = BatchScheduler(
            db, calculator, self.selector, self.tracker, self.recorder, self.ledger
        )
        self.cancellation = CancellationController(db, self.tracker, self.recorder)

    def _load_queries(self) -> Queries:
        queries = self._db.get_queries('batch')
        if queries is None:
            queries = self._db.load_queries('batch', str(SQL_DIR))
        return queries

    # ------------------------------------------------------------------
    # 실행
    # ------------------------------------------------------------------

    async def trigger_job(
        self,
        job_type: str,
        parameters: dict[str, Any] | None = None,
        account_ids: list[str] | None = None,
    ) -> Execution:
        """
        배치 실행 요청

        파라미터 우선순위: account_ids > 요청 parameters > 설정 기본 parameters

        Args:
            job_type: 잡 타입
            parameters: 실행 파라미터
            account_ids: 지정 계좌 (있으면 스케줄 상태와 무관하게 이 계좌들만 처리)

        Returns:
            RUNNING 상태의 실행 (처리는 백그라운드에서 진행)

        Raises:
            JobValidationError: 지원하지 않는 잡 타입, 설정 없음/비활성, 잘못된 파라미터
            JobConflictError: 같은 잡 타입의 실행이 이미 RUNNING
        """
        if self._closed:
            raise RuntimeError("InterestBatchEngine is closed")

        handler = self._resolve_handler(job_type)
        job_type = JobType(job_type).value

        config = await self.configs.get(job_type)
        if config is None:
            raise JobValidationError(f"No configuration found for job type: {job_type}")
        if not config.enabled:
            raise JobValidationError(f"Job type {job_type} is disabled")

        merged = {**config.parameters, **(parameters or {})}
        if account_ids:
            merged[SPECIFIC_ACCOUNT_IDS] = list(account_ids)
        try:
            resolve_reference_date(merged)
        except ValueError as e:
            raise JobValidationError(f"Invalid reference_date: {e}") from e

        execution = await self.tracker.start(job_type, merged)

        task = asyncio.create_task(
            self._run_execution(execution, config, handler),
            name=f"interest-batch-{execution.id}",
        )
        self._running_tasks.add(task)
        task.add_done_callback(self._on_task_done)

        logger.info(
            f"Triggered {job_type} execution {execution.id} "
            f"(account_ids={len(account_ids) if account_ids else 'all'})"
        )
        return execution

    @staticmethod
    def _resolve_handler(job_type: str) -> BaseJobHandler:
        try:
            JobType(job_type)
            return get_job_handler(job_type)
        except (ValueError, HandlerNotFoundError) as e:
            raise JobValidationError(f"Unsupported job type: {job_type}") from e

    async def _run_execution(self, execution: Execution, config: JobConfig, handler: BaseJobHandler) -> None:
        """백그라운드 처리 태스크 (요청측 트랜잭션과 분리)"""
        detach_all()
        await self.scheduler.run(execution, config, handler)

    def _on_task_done(self, task: asyncio.Task) -> None:
        """태스크 완료 콜백"""
        self._running_tasks.discard(task)
        if task.cancelled():
            logger.warning(f"Task cancelled: {task.get_name()}")
        elif task.exception():
            logger.error(f"Task exception: {task.exception()}")

    async def get_execution(self, execution_id: str) -> Execution | None:
        return await self.tracker.get(execution_id)

    async def list_executions(
        self,
        filter: ExecutionFilter | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> PageResult[Execution]:
        return await self.tracker.list_executions(filter, limit=limit, offset=offset)

    async def cancel_execution(self, execution_id: str) -> Execution:
        return await self.cancellation.cancel(execution_id)

    async def get_account_results(
        self,
        execution_id: str,
        status: AccountResultStatus | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> PageResult[AccountResult]:
        return await self.recorder.list_results(execution_id, status, limit=limit, offset=offset)

    async def get_account_status(self, account_id: str) -> AccountStatus | None:
        return await self.ledger.get(account_id)

    async def get_summary(self) -> BatchSummary:
        """오늘(UTC 0시 이후) 처리 현황 요약"""
        since = datetime.combine(utcnow().date(), time.min)
        stats = await self.recorder.stats_since(since)
        return BatchSummary(
            accounts_processed_today=stats['processed'],
            interest_posted_today=stats['interest_posted'],
            failed_accounts_today=stats['failed'],
            avg_processing_time_ms=stats['avg_processing_time_ms'],
            last_completed_run=await self.tracker.last_completed(),
            current_running_jobs=await self.tracker.count_running(),
            job_configurations=await self.configs.get_all(),
        )

    # ------------------------------------------------------------------
    # 설정
    # ------------------------------------------------------------------

    async def get_configs(self) -> list[JobConfig]:
        return await self.configs.get_all()

    async def get_config(self, job_type: str) -> JobConfig | None:
        return await self.configs.get(job_type)

    async def create_config(self, request: JobConfigCreate) -> JobConfig:
        return await self.configs.create(request)

    async def update_config(self, job_type: str, request: JobConfigUpdate) -> JobConfig:
        return await self.configs.update(job_type, request)

    # ------------------------------------------------------------------
    # 생명주기
    # ------------------------------------------------------------------

    async def recover_interrupted(self) -> int:
        """재시작 전 RUNNING으로 남은 실행을 FAILED로 정리"""
        return await self.tracker.recover_interrupted()

    async def wait_idle(self) -> None:
        """실행 중인 처리 태스크가 모두 끝날 때까지 대기"""
        while self._running_tasks:
            await asyncio.gather(*list(self._running_tasks), return_exceptions=True)

    async def close(self) -> None:
        """처리 태스크 종료 대기 (graceful shutdown), 타임아웃 시 강제 취소"""
        self._closed = True
        if self._running_tasks:
            logger.info(f"Waiting for {len(self._running_tasks)} running executions...")
            try:
                await asyncio.wait_for(
                    asyncio.gather(*self._running_tasks, return_exceptions=True),
                    timeout=self._config.shutdown_timeout_seconds,
                )
                logger.info("All executions completed")
            except asyncio.TimeoutError:
                logger.warning(
                    f"Shutdown timeout ({self._config.shutdown_timeout_seconds}s), "
                    f"{len(self._running_tasks)} executions still running"
                )
                pending = list(self._running_tasks)
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)

        await self._calculator.close()
        logger.info("InterestBatchEngine closed")

    @property
    def database(self) -> BaseDatabase:
        """엔진이 사용하는 데이터베이스"""
        return self._db

    @property
    def running_task_count(self) -> int:
        """실행 중인 처리 태스크 수"""
        return len(self._running_tasks)


def _load_handlers() -> None:
    """핸들러 모듈 로드 (데코레이터 등록을 위해, 하위 폴더 재귀 탐색)"""
    import importlib
    import pkgutil
    from batch import job as job_pkg

    def load_recursive(package, prefix: str):
        for _, module_name, is_pkg in pkgutil.iter_modules(package.__path__):
            full_name = f"{prefix}.{module_name}"
            module = importlib.import_module(full_name)
            logger.debug(f"Loaded handler module: {full_name}")
            if is_pkg:
                load_recursive(module, full_name)

    load_recursive(job_pkg, "batch.job")


def create_engine(batch_config: dict[str, Any] | None = None) -> InterestBatchEngine:
    """
    batch.yaml의 `batch` 항목으로 엔진 생성

    DatabaseRegistry 초기화 이후에 호출해야 한다.
    """
    from database.registry import get_db
    from batch.calculator import HttpInterestCalculator

    config = EngineConfig(**(batch_config or {}))
    calculator = HttpInterestCalculator(
        base_url=config.calculator_base_url,
        api_key=config.calculator_api_key,
        timeout=config.calculator_timeout_seconds,
    )
    return InterestBatchEngine(get_db(config.database), calculator, config)
