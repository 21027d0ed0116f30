"""
SQLite3 데이터베이스 테스트

테스트 항목:
1. 커넥션 풀 테스트
2. 트랜잭션 (commit, rollback)
3. 중첩 트랜잭션 합류 / 백그라운드 태스크 분리
4. 커넥션 풀 소진 테스트 (타임아웃)
5. readOnly 모드 테스트
6. 로깅 테스트
7. 스키마 (job_type별 RUNNING 실행 하나)
8. 다중 DB 레지스트리

실행: python -m pytest test/sqlite3_test.py -v
"""

import asyncio
import logging
import sqlite3
import sys
from pathlib import Path

import aiosqlite
import pytest
import pytest_asyncio

sys.path.insert(0, str(Path(__file__).parent.parent))

from database import (
    get_connection,
    get_db,
    ConnectionPoolExhaustedError,
    ReadOnlyTransactionError,
)
from database.context import detach_all
from database.registry import DatabaseRegistry

from conftest import make_db_config

logger = logging.getLogger(__name__)

BATCH_SQL_PATH = Path(__file__).parent.parent / "batch" / "sql"

INSERT_CONFIG = (
    "INSERT INTO interest_batch_config "
    "(id, job_type, account_types, created_at, updated_at) VALUES (?, ?, '[\"SAVINGS\"]', 'now', 'now')"
)

INSERT_EXECUTION = (
    "INSERT INTO interest_batch_execution (id, job_type, started_at, status, created_at, updated_at) "
    "VALUES (?, ?, 'now', ?, 'now', 'now')"
)


async def count_configs(db, job_type: str | None = None) -> int:
    async with db.transaction(readonly=True) as ctx:
        if job_type is None:
            return await ctx.fetch_val("SELECT COUNT(*) FROM interest_batch_config")
        return await ctx.fetch_val("SELECT COUNT(*) FROM interest_batch_config WHERE job_type = ?", (job_type,))


class TestConnectionPool:
    """커넥션 풀 관련 테스트"""

    @pytest.mark.asyncio
    async def test_pool_initialization(self, database):
        pool = database.pool
        assert pool.size == 8
        assert pool.available == 8

    @pytest.mark.asyncio
    async def test_connection_acquire_release(self, database):
        """커넥션 획득/반환 테스트"""
        pool = database.pool

        conn1 = await pool.acquire()
        assert pool.available == 7
        assert conn1.in_use is True

        await pool.release(conn1)
        assert pool.available == 8
        assert conn1.in_use is False

    @pytest.mark.asyncio
    async def test_get_db_function(self, database):
        assert get_db('default') is database

    @pytest.mark.asyncio
    async def test_init_tables(self, database):
        """init.sql로 테이블이 생성됨"""
        async with database.transaction(readonly=True) as ctx:
            rows = await ctx.fetch_all("SELECT name FROM sqlite_master WHERE type = 'table'")
        tables = {row['name'] for row in rows}
        assert {
            'interest_batch_config',
            'interest_batch_execution',
            'interest_batch_account_result',
            'interest_batch_account_status',
            'savings_account',
        } <= tables


class TestTransaction:
    """트랜잭션 테스트"""

    @pytest.mark.asyncio
    async def test_commit(self, database):
        async with database.transaction() as ctx:
            await ctx.execute(INSERT_CONFIG, ("c1", "DAILY_INTEREST_ACCRUAL"))

        assert await count_configs(database) == 1

    @pytest.mark.asyncio
    async def test_rollback_on_exception(self, database):
        with pytest.raises(ValueError):
            async with database.transaction() as ctx:
                await ctx.execute(INSERT_CONFIG, ("c1", "DAILY_INTEREST_ACCRUAL"))
                raise ValueError("boom")

        assert await count_configs(database) == 0

    @pytest.mark.asyncio
    async def test_get_connection_inside_transaction(self, database):
        async with database.transaction() as ctx:
            assert get_connection('default') is ctx

        with pytest.raises(RuntimeError, match="No active transaction"):
            get_connection('default')


class TestNestedTransaction:
    """중첩 트랜잭션 합류 테스트"""

    @pytest.mark.asyncio
    async def test_inner_joins_outer(self, database):
        async with database.transaction() as outer:
            async with database.transaction() as inner:
                assert inner is outer
                await inner.execute(INSERT_CONFIG, ("c1", "DAILY_INTEREST_ACCRUAL"))
            # 안쪽 블록이 끝나도 커넥션은 반환되지 않음
            assert database.pool.available == 7

        assert database.pool.available == 8
        assert await count_configs(database) == 1

    @pytest.mark.asyncio
    async def test_outer_rollback_discards_inner_writes(self, database):
        with pytest.raises(RuntimeError):
            async with database.transaction() as outer:
                async with database.transaction() as inner:
                    await inner.execute(INSERT_CONFIG, ("c1", "DAILY_INTEREST_ACCRUAL"))
                await outer.execute(INSERT_CONFIG, ("c2", "INTEREST_POSTING"))
                raise RuntimeError("fail after inner block")

        assert await count_configs(database) == 0

    @pytest.mark.asyncio
    async def test_readonly_inside_write(self, database):
        """쓰기 트랜잭션 안의 읽기는 같은 트랜잭션의 미커밋 데이터를 봄"""
        async with database.transaction() as ctx:
            await ctx.execute(INSERT_CONFIG, ("c1", "DAILY_INTEREST_ACCRUAL"))
            async with database.transaction(readonly=True) as reader:
                assert await reader.fetch_val("SELECT COUNT(*) FROM interest_batch_config") == 1

    @pytest.mark.asyncio
    async def test_write_inside_readonly_rejected(self, database):
        with pytest.raises(ReadOnlyTransactionError):
            async with database.transaction(readonly=True):
                async with database.transaction():
                    pass

    @pytest.mark.asyncio
    async def test_task_inherits_binding_until_detached(self, database):
        """태스크는 생성 시점의 바인딩을 물려받고, detach_all 후에는 자기 트랜잭션을 엶"""
        async def background() -> bool:
            detach_all()
            async with database.transaction() as ctx:
                await ctx.execute(INSERT_CONFIG, ("bg", "INTEREST_POSTING"))
            return True

        async with database.transaction() as outer:
            await outer.execute(INSERT_CONFIG, ("fg", "DAILY_INTEREST_ACCRUAL"))
            task = asyncio.create_task(background())

        assert await task is True
        assert await count_configs(database) == 2


class TestReadOnlyTransaction:
    """읽기 전용 트랜잭션 테스트"""

    @pytest.mark.asyncio
    async def test_readonly_select(self, database):
        async with database.transaction(readonly=True) as ctx:
            rows = await ctx.fetch_all("SELECT * FROM interest_batch_config")
        assert rows == []

    @pytest.mark.asyncio
    async def test_readonly_write_blocked(self, database):
        """읽기 전용 모드에서 쓰기 차단 테스트"""
        with pytest.raises(ReadOnlyTransactionError):
            async with database.transaction(readonly=True) as ctx:
                await ctx.execute(INSERT_CONFIG, ("c1", "DAILY_INTEREST_ACCRUAL"))

    @pytest.mark.asyncio
    async def test_readonly_blocks_aiosql_write(self, database):
        """ctx.execute를 거치지 않는 aiosql 쿼리의 쓰기도 차단"""
        queries = database.load_queries('batch', str(BATCH_SQL_PATH))
        with pytest.raises(ReadOnlyTransactionError):
            async with database.transaction(readonly=True) as ctx:
                await queries.insert_config(
                    ctx.connection,
                    id="c1", job_type="DAILY_INTEREST_ACCRUAL", batch_size=100, max_retries=3,
                    retry_interval_minutes=5, timeout_seconds=3600, parallel_threads=1, enabled=1,
                    description=None, account_types='["SAVINGS"]', parameters='{}',
                    cron_expression=None, now="now",
                )

        assert await count_configs(database) == 0

    @pytest.mark.asyncio
    async def test_readonly_lock_released_after_transaction(self, database):
        """readonly 트랜잭션이 끝나면 풀의 연결은 다시 쓰기 가능"""
        for _ in range(3):
            async with database.transaction(readonly=True) as ctx:
                await ctx.fetch_all("SELECT * FROM interest_batch_config")

        for pooled in database.pool._pool:
            cursor = await pooled.connection.execute("PRAGMA query_only")
            row = await cursor.fetchone()
            assert row[0] == 0


class TestConnectionPoolExhaustion:
    """커넥션 풀 소진 테스트"""

    @pytest.mark.asyncio
    async def test_pool_exhaustion_timeout(self, database):
        pool = database.pool
        connections = [await pool.acquire() for _ in range(pool.size)]
        assert pool.available == 0

        with pytest.raises(ConnectionPoolExhaustedError):
            await pool.acquire(timeout=0.2)

        for conn in connections:
            await pool.release(conn)

    @pytest.mark.asyncio
    async def test_pool_wait_and_acquire(self, database):
        """커넥션 반환 대기 후 획득 테스트"""
        pool = database.pool
        connections = [await pool.acquire() for _ in range(pool.size)]

        async def release_after_delay():
            await asyncio.sleep(0.2)
            await pool.release(connections[0])

        release_task = asyncio.create_task(release_after_delay())
        new_conn = await pool.acquire(timeout=2.0)
        assert new_conn is connections[0]

        await release_task
        await pool.release(new_conn)
        for conn in connections[1:]:
            await pool.release(conn)


class TestLogging:
    """SQL 로깅 테스트"""

    @pytest.mark.asyncio
    async def test_query_logging(self, database, caplog):
        with caplog.at_level(logging.DEBUG):
            async with database.transaction(readonly=True) as ctx:
                await ctx.fetch_all("SELECT * FROM interest_batch_config WHERE enabled = ?", (1,))

        assert any("[SQL]" in r.message and "SELECT" in r.message for r in caplog.records)

    @pytest.mark.asyncio
    async def test_aiosql_query_logging(self, database, caplog):
        """aiosql 쿼리도 연결 trace 콜백으로 로깅"""
        queries = database.load_queries('batch', str(BATCH_SQL_PATH))
        with caplog.at_level(logging.DEBUG, logger='database.sqlite3.connection'):
            async with database.transaction(readonly=True) as ctx:
                await queries.get_config_by_type(ctx.connection, job_type="INTEREST_POSTING")

        assert any("[SQL]" in r.message and "interest_batch_config" in r.message for r in caplog.records)


class TestSchema:
    """스키마 제약 테스트"""

    @pytest.mark.asyncio
    async def test_single_running_execution_per_type(self, database):
        async with database.transaction() as ctx:
            await ctx.execute(INSERT_EXECUTION, ("e1", "DAILY_INTEREST_ACCRUAL", "RUNNING"))
            await ctx.execute(INSERT_EXECUTION, ("e2", "DAILY_INTEREST_ACCRUAL", "COMPLETED"))
            await ctx.execute(INSERT_EXECUTION, ("e3", "INTEREST_POSTING", "RUNNING"))

        with pytest.raises((aiosqlite.IntegrityError, sqlite3.IntegrityError)):
            async with database.transaction() as ctx:
                await ctx.execute(INSERT_EXECUTION, ("e4", "DAILY_INTEREST_ACCRUAL", "RUNNING"))

    @pytest.mark.asyncio
    async def test_unique_config_per_type(self, database):
        async with database.transaction() as ctx:
            await ctx.execute(INSERT_CONFIG, ("c1", "DAILY_INTEREST_ACCRUAL"))

        with pytest.raises(sqlite3.IntegrityError):
            async with database.transaction() as ctx:
                await ctx.execute(INSERT_CONFIG, ("c2", "DAILY_INTEREST_ACCRUAL"))

    @pytest.mark.asyncio
    async def test_concurrent_transactions(self, database):
        async def insert(index: int):
            async with database.transaction() as ctx:
                await ctx.execute(INSERT_EXECUTION, (f"e{index}", f"JOB_{index}", "RUNNING"))

        await asyncio.gather(*(insert(i) for i in range(5)))

        async with database.transaction(readonly=True) as ctx:
            assert await ctx.fetch_val("SELECT COUNT(*) FROM interest_batch_execution") == 5


class TestMultiDatabase:
    """다중 DB 레지스트리 테스트"""

    @pytest_asyncio.fixture
    async def multi_db_setup(self, tmp_path):
        DatabaseRegistry.clear()
        config = make_db_config(tmp_path / "default.db", pool_size=3)
        config['databases']['secondary'] = {
            'type': 'sqlite3',
            'path': str(tmp_path / "secondary.db"),
            'pool': {'pool_size': 2},
        }

        await DatabaseRegistry.init_from_config(config)
        yield get_db('default'), get_db('secondary')
        await DatabaseRegistry.close_all()

    @pytest.mark.asyncio
    async def test_independent_databases(self, multi_db_setup):
        default_db, secondary_db = multi_db_setup

        async with default_db.transaction() as default_ctx:
            async with secondary_db.transaction() as secondary_ctx:
                assert secondary_ctx is not default_ctx
                assert get_connection('secondary') is secondary_ctx
                await secondary_ctx.execute(INSERT_CONFIG, ("s1", "INTEREST_POSTING"))
            await default_ctx.execute(INSERT_CONFIG, ("d1", "DAILY_INTEREST_ACCRUAL"))

        assert await count_configs(default_db, "DAILY_INTEREST_ACCRUAL") == 1
        assert await count_configs(secondary_db, "INTEREST_POSTING") == 1
        assert await count_configs(default_db, "INTEREST_POSTING") == 0

    @pytest.mark.asyncio
    async def test_database_registry(self, multi_db_setup):
        default_db, secondary_db = multi_db_setup

        assert default_db.pool.size == 3
        assert secondary_db.pool.size == 2
        with pytest.raises(KeyError):
            get_db('nonexistent')

    @pytest.mark.asyncio
    async def test_init_subset(self, tmp_path):
        DatabaseRegistry.clear()
        config = make_db_config(tmp_path / "only.db")
        config['databases']['unused'] = {'type': 'sqlite3', 'path': str(tmp_path / "unused.db")}
        try:
            await DatabaseRegistry.init_from_config(config, ['default'])
            assert get_db('default') is not None
            with pytest.raises(KeyError):
                get_db('unused')
        finally:
            await DatabaseRegistry.close_all()

    @pytest.mark.asyncio
    async def test_unsupported_type(self, tmp_path):
        DatabaseRegistry.clear()
        with pytest.raises(ValueError):
            await DatabaseRegistry.init_from_config({'databases': {'x': {'type': 'oracle'}}})


if __name__ == "__main__":
    pytest.main([__file__, "-v", "-s"])
