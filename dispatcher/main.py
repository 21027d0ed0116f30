"""
Dispatcher: 크론 기반 배치 트리거 모듈

cron_expression이 설정된 활성 배치 설정을 주기적으로 폴링하여
실행 시점에 도달한 잡 타입에 대해 엔진의 trigger_job을 호출합니다.

실행 방법:
    python -m dispatcher.main
    python main.py dispatcher
"""

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path

from croniter import croniter

from database import ConnectionPoolExhaustedError, TransactionError
from batch import InterestBatchEngine, JobConflictError, JobValidationError
from batch.model import JobConfig
from dispatcher.model.dispatcher import DispatcherConfig
from dispatcher.exception import CronParseError, CronIntervalTooShortError

logger = logging.getLogger(__name__)


def validate_cron_expression(cron_expression: str, min_interval_seconds: int) -> None:
    """
    크론 표현식 및 간격 검증 (초단위 크론 차단)

    Raises:
        CronParseError: 파싱 실패
        CronIntervalTooShortError: 간격이 min_interval_seconds 미만인 경우
    """
    try:
        cron = croniter(cron_expression, datetime.now(timezone.utc))

        # 다음 두 실행 시점의 간격 계산
        next1 = cron.get_next(datetime)
        next2 = cron.get_next(datetime)
        interval_seconds = (next2 - next1).total_seconds()
    except Exception as e:
        raise CronParseError(cron_expression, str(e))

    if interval_seconds < min_interval_seconds:
        raise CronIntervalTooShortError(cron_expression, interval_seconds, min_interval_seconds)


class Dispatcher:
    """
    크론 기반 배치 Dispatcher

    같은 예정 시각에 대해 한 번만 트리거한다.
    이전 실행이 아직 RUNNING이면 엔진이 JobConflictError를 내므로 해당 회차는 건너뛴다.
    """

    def __init__(self, config: DispatcherConfig, engine: InterestBatchEngine):
        """
        Args:
            config: Dispatcher 설정
            engine: 배치를 실행할 엔진
        """
        self._config = config
        self._engine = engine
        self._running = False
        self._stop_event: asyncio.Event | None = None
        self._last_fired: dict[str, datetime] = {}

    async def start(self) -> None:
        """Dispatcher 메인 루프 시작"""
        if self._running:
            logger.warning("Dispatcher is already running")
            return

        self._running = True
        self._stop_event = asyncio.Event()

        logger.info(
            f"Dispatcher started (poll_interval={self._config.poll_interval_seconds}s, "
            f"max_sleep={self._config.max_sleep_seconds}s)"
        )

        try:
            await self._main_loop()
        except asyncio.CancelledError:
            logger.info("Dispatcher cancelled")
        except Exception as e:
            logger.error(f"Dispatcher error: {e}", exc_info=True)
            raise
        finally:
            self._running = False
            logger.info("Dispatcher stopped")

    async def stop(self) -> None:
        """Dispatcher graceful shutdown"""
        if not self._running:
            return

        logger.info("Stopping dispatcher...")
        self._running = False
        if self._stop_event:
            self._stop_event.set()

    async def _main_loop(self) -> None:
        """메인 루프: 배치 설정 폴링 및 트리거"""
        while self._running:
            try:
                configs = await self._engine.configs.list_scheduled()
                logger.debug(f"Polled {len(configs)} scheduled configs")

                now = datetime.now(timezone.utc)
                for config in configs:
                    await self.process_config(config, now)

                await self._sleep(self._calculate_next_sleep(configs))

            except ConnectionPoolExhaustedError as e:
                logger.warning(f"Connection pool exhausted: {e}. Retrying in 10s...")
                await self._sleep(10)

            except TransactionError as e:
                logger.error(f"Database error: {e}. Continuing...")
                await self._sleep(self._config.poll_interval_seconds)

            except Exception as e:
                logger.error(f"Unexpected error in main loop: {e}", exc_info=True)
                await self._sleep(self._config.poll_interval_seconds)

    async def _sleep(self, seconds: float) -> None:
        """인터럽트 가능한 sleep"""
        if self._stop_event:
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=seconds
                )
            except asyncio.TimeoutError:
                pass

    async def process_config(self, config: JobConfig, now: datetime) -> bool:
        """
        개별 설정 처리

        실행 시점에 도달했으면 배치를 트리거한다.

        Returns:
            True: 이번 호출에서 트리거됨
        """
        job_type = config.job_type.value
        try:
            validate_cron_expression(config.cron_expression, self._config.min_cron_interval_seconds)

            scheduled_time = self._due_time(config.cron_expression, now)
            if scheduled_time is None:
                return False
            if self._last_fired.get(job_type) == scheduled_time:
                return False
            self._last_fired[job_type] = scheduled_time

            execution = await self._engine.trigger_job(job_type)
            logger.info(
                f"Triggered scheduled batch: job_type={job_type}, "
                f"execution_id={execution.id}, scheduled_time={scheduled_time.isoformat()}"
            )
            return True

        except JobConflictError as e:
            logger.info(f"Skipping scheduled batch, previous run still active: {e.message}")

        except JobValidationError as e:
            logger.warning(f"Scheduled batch rejected for '{job_type}': {e.message}")

        except CronParseError as e:
            logger.error(f"Cron parse error for '{job_type}': {e}")

        except CronIntervalTooShortError as e:
            logger.warning(f"Cron interval too short for '{job_type}': {e}")

        except Exception as e:
            # 개별 설정 에러는 격리하여 다른 설정 처리에 영향을 주지 않음
            logger.error(f"Error processing scheduled config '{job_type}': {e}", exc_info=True)

        return False

    def _due_time(self, cron_expression: str, now: datetime) -> datetime | None:
        """직전 실행 시점이 poll_interval 이내이면 그 시점, 아니면 None"""
        try:
            prev_time = croniter(cron_expression, now).get_prev(datetime)
        except Exception as e:
            raise CronParseError(cron_expression, str(e))

        diff_seconds = (now - prev_time).total_seconds()
        if diff_seconds <= self._config.poll_interval_seconds:
            return prev_time
        return None

    def _calculate_next_sleep(self, configs: list[JobConfig]) -> float:
        """
        다음 실행까지의 대기 시간 계산

        모든 설정 중 가장 빨리 실행될 시간까지의 간격을 계산하되,
        poll_interval_seconds ~ max_sleep_seconds 범위로 제한
        """
        if not configs:
            return self._config.poll_interval_seconds

        now = datetime.now(timezone.utc)
        min_wait = float(self._config.max_sleep_seconds)

        for config in configs:
            try:
                next_time = croniter(config.cron_expression, now).get_next(datetime)
                wait_seconds = (next_time - now).total_seconds()
                if wait_seconds > 0:
                    min_wait = min(min_wait, wait_seconds)
            except Exception as e:
                logger.debug(f"Error calculating next run for '{config.job_type.value}': {e}")
                continue

        sleep_time = max(
            self._config.poll_interval_seconds,
            min(min_wait, self._config.max_sleep_seconds)
        )

        logger.debug(f"Next sleep: {sleep_time:.1f}s")
        return sleep_time

    @property
    def is_running(self) -> bool:
        """실행 중 여부"""
        return self._running


if __name__ == "__main__":
    import signal
    import yaml
    from batch import create_engine
    from common.logging import setup_logging
    from database.registry import DatabaseRegistry

    async def main():
        # 설정 로드 (프로젝트 루트 기준)
        config_path = Path(__file__).parent.parent / "config"

        with open(config_path / "database.yaml", encoding="utf-8") as f:
            db_config = yaml.safe_load(f)
        with open(config_path / "batch.yaml", encoding="utf-8") as f:
            batch_config = yaml.safe_load(f) or {}
        with open(config_path / "dispatcher.yaml", encoding="utf-8") as f:
            dispatcher_config = yaml.safe_load(f) or {}

        setup_logging(level="DEBUG")

        config = DispatcherConfig(**dispatcher_config.get("dispatcher", {}))
        engine_section = batch_config.get("batch", {})

        # 데이터베이스 초기화 (엔진이 사용하는 DB만)
        await DatabaseRegistry.init_from_config(db_config, [engine_section.get("database", "default")])

        engine = create_engine(engine_section)
        await engine.recover_interrupted()
        dispatcher = Dispatcher(config, engine)

        # Graceful Shutdown 시그널 핸들러
        loop = asyncio.get_running_loop()

        def signal_handler():
            logger.info("Received shutdown signal")
            asyncio.create_task(dispatcher.stop())

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, signal_handler)

        try:
            logger.info("Starting dispatcher...")
            await dispatcher.start()
        finally:
            await engine.close()
            await DatabaseRegistry.close_all()

    asyncio.run(main())
