"""
Dispatcher 테스트

테스트 항목:
1. 크론 표현식 검증 (파싱 에러, 1분 미만 간격 차단)
2. 크론 시간 도달 시 잡 트리거, 같은 예정 시각은 한 번만
3. 이전 실행이 RUNNING이면 해당 회차 건너뜀
4. 비활성/크론 없는 설정은 스케줄 대상 아님
5. 특정 설정의 크론 파싱 에러 시 다른 설정은 정상 동작

실행: python -m pytest test/dispatcher_test.py -v
"""

import asyncio
import logging
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

# 프로젝트 루트 경로 추가
sys.path.insert(0, str(Path(__file__).parent.parent))

from batch import JobConflictError, JobValidationError
from batch.model import ExecutionStatus, JobConfig, JobType
from dispatcher.main import Dispatcher, validate_cron_expression
from dispatcher.model.dispatcher import DispatcherConfig
from dispatcher.exception import CronParseError, CronIntervalTooShortError

logger = logging.getLogger(__name__)

ACCRUAL = JobType.DAILY_INTEREST_ACCRUAL.value
POSTING = JobType.INTEREST_POSTING.value


def make_config(job_type: str = ACCRUAL, cron_expression: str | None = "* * * * *") -> JobConfig:
    return JobConfig(
        id=f"cfg-{job_type}",
        job_type=job_type,
        batch_size=100,
        max_retries=3,
        retry_interval_minutes=15,
        timeout_seconds=3600,
        parallel_threads=4,
        enabled=True,
        account_types=["SAVINGS"],
        cron_expression=cron_expression,
    )


def fake_engine(side_effect=None) -> SimpleNamespace:
    """trigger_job만 가진 가짜 엔진"""
    trigger = AsyncMock(side_effect=side_effect)
    trigger.return_value = SimpleNamespace(id="exec-1")
    return SimpleNamespace(trigger_job=trigger)


class TestCronValidation:
    """크론 표현식 검증 테스트"""

    def test_valid_expression(self):
        validate_cron_expression("0 1 * * *", 60)
        validate_cron_expression("* * * * *", 60)

    def test_invalid_expression(self):
        with pytest.raises(CronParseError):
            validate_cron_expression("not a cron", 60)

    def test_seconds_level_cron_rejected(self):
        """초 단위 필드가 있는 6필드 크론은 간격이 짧아 거절"""
        with pytest.raises(CronIntervalTooShortError) as exc_info:
            validate_cron_expression("* * * * * */10", 60)
        assert exc_info.value.interval_seconds < 60

    def test_interval_below_minimum(self):
        with pytest.raises(CronIntervalTooShortError):
            validate_cron_expression("*/5 * * * *", 600)


class TestProcessConfig:
    """개별 설정 처리 테스트 (가짜 엔진)"""

    @pytest.mark.asyncio
    async def test_triggers_once_per_fire_time(self):
        engine = fake_engine()
        dispatcher = Dispatcher(DispatcherConfig(), engine)
        config = make_config()
        now = datetime(2024, 1, 15, 1, 0, 30, tzinfo=timezone.utc)

        assert await dispatcher.process_config(config, now) is True
        assert await dispatcher.process_config(config, now + timedelta(seconds=20)) is False
        engine.trigger_job.assert_awaited_once_with(ACCRUAL)

        # 다음 예정 시각에는 다시 트리거
        assert await dispatcher.process_config(config, now + timedelta(minutes=1)) is True
        assert engine.trigger_job.await_count == 2

    @pytest.mark.asyncio
    async def test_not_due(self):
        """직전 예정 시각이 poll_interval보다 오래됐으면 트리거하지 않음"""
        engine = fake_engine()
        dispatcher = Dispatcher(DispatcherConfig(poll_interval_seconds=60), engine)
        config = make_config(cron_expression="0 1 * * *")
        now = datetime(2024, 1, 15, 3, 0, 0, tzinfo=timezone.utc)

        assert await dispatcher.process_config(config, now) is False
        engine.trigger_job.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_conflict_skips_tick(self):
        engine = fake_engine(side_effect=JobConflictError(ACCRUAL))
        dispatcher = Dispatcher(DispatcherConfig(), engine)
        now = datetime(2024, 1, 15, 1, 0, 5, tzinfo=timezone.utc)

        assert await dispatcher.process_config(make_config(), now) is False
        engine.trigger_job.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_validation_error_isolated(self):
        engine = fake_engine(side_effect=JobValidationError("Job type DAILY_INTEREST_ACCRUAL is disabled"))
        dispatcher = Dispatcher(DispatcherConfig(), engine)
        now = datetime(2024, 1, 15, 1, 0, 5, tzinfo=timezone.utc)

        assert await dispatcher.process_config(make_config(), now) is False

    @pytest.mark.asyncio
    async def test_parse_error_does_not_affect_others(self):
        engine = fake_engine()
        dispatcher = Dispatcher(DispatcherConfig(), engine)
        now = datetime(2024, 1, 15, 1, 0, 5, tzinfo=timezone.utc)

        broken = make_config(ACCRUAL, cron_expression="invalid cron")
        healthy = make_config(POSTING)

        assert await dispatcher.process_config(broken, now) is False
        assert await dispatcher.process_config(healthy, now) is True
        engine.trigger_job.assert_awaited_once_with(POSTING)

    @pytest.mark.asyncio
    async def test_short_interval_not_triggered(self):
        engine = fake_engine()
        dispatcher = Dispatcher(DispatcherConfig(), engine)
        now = datetime(2024, 1, 15, 1, 0, 0, tzinfo=timezone.utc)

        assert await dispatcher.process_config(make_config(cron_expression="* * * * * *"), now) is False
        engine.trigger_job.assert_not_awaited()


class TestNextSleep:
    """대기 시간 계산 테스트"""

    def test_no_configs(self):
        dispatcher = Dispatcher(DispatcherConfig(poll_interval_seconds=30), fake_engine())
        assert dispatcher._calculate_next_sleep([]) == 30

    def test_bounded(self):
        config = DispatcherConfig(poll_interval_seconds=30, max_sleep_seconds=120)
        dispatcher = Dispatcher(config, fake_engine())

        sleep_time = dispatcher._calculate_next_sleep([make_config(cron_expression="0 0 1 1 *")])
        assert sleep_time == 120

        sleep_time = dispatcher._calculate_next_sleep([make_config()])
        assert 30 <= sleep_time <= 60


class TestDispatcherWithEngine:
    """실제 엔진과 연동 테스트"""

    @pytest.mark.asyncio
    async def test_scheduled_configs(self, engine, create_config):
        """비활성/크론 없는 설정은 스케줄 대상에서 제외"""
        await create_config(ACCRUAL, cron_expression="0 1 * * *")
        await create_config(POSTING, enabled=False, cron_expression="0 2 * * *")

        scheduled = await engine.configs.list_scheduled()
        assert [c.job_type for c in scheduled] == [JobType.DAILY_INTEREST_ACCRUAL]

    @pytest.mark.asyncio
    async def test_main_loop_triggers(self, engine, seed_accounts, create_config, wait_for):
        await seed_accounts([("A1", "SAVINGS", "ACTIVE", None)])
        await create_config(ACCRUAL, cron_expression="* * * * *")

        dispatcher = Dispatcher(DispatcherConfig(poll_interval_seconds=60), engine)
        task = asyncio.create_task(dispatcher.start())
        try:
            await wait_for(lambda: engine.running_task_count > 0 or dispatcher._last_fired)
            assert dispatcher.is_running
        finally:
            await dispatcher.stop()
            await asyncio.wait_for(task, timeout=5)

        await engine.wait_idle()
        page = await engine.list_executions()
        assert page.total_count == 1
        assert page.data[0].status == ExecutionStatus.COMPLETED
        assert not dispatcher.is_running

    @pytest.mark.asyncio
    async def test_running_execution_blocks_next_tick(self, engine, calculator, seed_accounts, create_config, wait_for):
        await seed_accounts([("A1", "SAVINGS", "ACTIVE", None)])
        config = await create_config(ACCRUAL, cron_expression="* * * * *")
        calculator.gate = asyncio.Event()

        dispatcher = Dispatcher(DispatcherConfig(), engine)
        now = datetime.now(timezone.utc)
        assert await dispatcher.process_config(config, now) is True
        await wait_for(lambda: calculator.in_flight == 1)

        assert await dispatcher.process_config(config, now + timedelta(minutes=1)) is False
        assert (await engine.list_executions()).total_count == 1

        calculator.gate.set()
        await engine.wait_idle()
