"""
공용 테스트 픽스처

- 임시 SQLite 파일 DB (DatabaseRegistry 사용)
- 동시 호출 수를 기록하는 가짜 이자 계산 엔진
- 계좌/설정 시드 헬퍼
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest_asyncio

# 프로젝트 루트 경로 추가
sys.path.insert(0, str(Path(__file__).parent.parent))

from database import get_db
from database.registry import DatabaseRegistry
from batch import InterestBatchEngine, EngineConfig, CalculationError
from batch.calculator import InterestCalculator
from batch.model import AccrualResult, JobConfigCreate, PostingResult

# 테스트용 로깅 설정
logging.basicConfig(
    level=logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


class FakeCalculator(InterestCalculator):
    """
    테스트용 이자 계산 엔진

    gate를 설정하면 set될 때까지 모든 호출이 대기한다.
    business_failures는 success=False, infra_failures는 CalculationError를 낸다.
    """

    def __init__(self):
        self.delay = 0.0
        self.gate: asyncio.Event | None = None
        self.business_failures: set[str] = set()
        self.infra_failures: set[str] = set()
        self.calculation_date = date(2024, 1, 15)
        self.posting_date = date(2024, 1, 15)
        self.interest_calculated = Decimal("1.25")
        self.interest_posted = Decimal("10.00")
        self.tax_amount = Decimal("1.40")

        self.in_flight = 0
        self.max_in_flight = 0
        self.started: list[str] = []
        self.finished: list[str] = []
        self.closed = False

    @asynccontextmanager
    async def _call(self, account_id: str):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        self.started.append(account_id)
        try:
            if self.gate is not None:
                await self.gate.wait()
            await asyncio.sleep(self.delay)
            yield
        finally:
            self.in_flight -= 1
            self.finished.append(account_id)

    async def calculate_daily_interest(self, account_id: str) -> AccrualResult:
        async with self._call(account_id):
            if account_id in self.infra_failures:
                raise CalculationError(account_id, "calculate_daily_interest", "connection refused")
            if account_id in self.business_failures:
                return AccrualResult(success=False, error_message="Account is frozen")
            return AccrualResult(
                success=True,
                interest_calculated=self.interest_calculated,
                calculation_date=self.calculation_date,
            )

    async def post_interest(self, account_id: str) -> PostingResult:
        async with self._call(account_id):
            if account_id in self.infra_failures:
                raise CalculationError(account_id, "post_interest", "connection refused")
            if account_id in self.business_failures:
                return PostingResult(success=False, error_message="Insufficient accrued interest")
            return PostingResult(
                success=True,
                interest_posted=self.interest_posted,
                tax_amount=self.tax_amount,
                posting_date=self.posting_date,
            )

    async def close(self) -> None:
        self.closed = True


def make_db_config(db_path: Path, pool_size: int = 8) -> dict:
    """테스트용 database.yaml 내용"""
    return {
        'databases': {
            'default': {
                'type': 'sqlite3',
                'path': str(db_path),
                'pool': {'pool_size': pool_size, 'pool_timeout': 10.0},
            }
        }
    }


async def wait_until(predicate, timeout: float = 5.0, interval: float = 0.01) -> None:
    """predicate()가 참이 될 때까지 대기"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise TimeoutError("condition not met in time")
        await asyncio.sleep(interval)


@pytest_asyncio.fixture
async def database(tmp_path):
    """임시 파일 기반 Database 인스턴스 (DatabaseRegistry 사용)"""
    DatabaseRegistry.clear()
    await DatabaseRegistry.init_from_config(make_db_config(tmp_path / "interest_batch.db"))
    db = get_db('default')

    yield db
    await DatabaseRegistry.close_all()


@pytest_asyncio.fixture
async def calculator():
    return FakeCalculator()


@pytest_asyncio.fixture
async def engine(database, calculator):
    """테스트용 InterestBatchEngine"""
    engine = InterestBatchEngine(database, calculator, EngineConfig(shutdown_timeout_seconds=5))
    yield engine
    if calculator.gate is not None:
        calculator.gate.set()
    await engine.close()


@pytest_asyncio.fixture
async def seed_accounts(database):
    """savings_account 시드 함수"""
    async def seed(accounts: list[tuple]) -> None:
        """accounts: (id, account_type, status, posting_frequency) 목록"""
        rows = [
            (account_id, f"NO-{account_id}", account_type, status, frequency)
            for account_id, account_type, status, frequency in accounts
        ]
        async with database.transaction() as ctx:
            await ctx.executemany(
                "INSERT INTO savings_account (id, account_number, account_type, status, posting_frequency) "
                "VALUES (?, ?, ?, ?, ?)",
                rows,
            )
    return seed


@pytest_asyncio.fixture
async def create_config(engine):
    """배치 설정 생성 함수"""
    async def create(job_type: str, **fields):
        return await engine.create_config(JobConfigCreate(job_type=job_type, **fields))
    return create


@pytest_asyncio.fixture
async def wait_for():
    """조건 대기 함수"""
    return wait_until
