"""
SQLite3 비동기 커넥션풀 모듈

aiosqlite를 사용하여 비동기 SQLite3 커넥션풀을 제공합니다.
"""

import asyncio
import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite
import aiosql
from aiosql.queries import Queries

from database.base import BaseDatabase
from database.context import set_connection, clear_connection, get_current
from database.exception import (
    ConnectionPoolExhaustedError,
    ReadOnlyTransactionError,
    TransactionError,
)

logger = logging.getLogger(__name__)


@dataclass
class PoolConfig:
    """커넥션풀 설정"""
    pool_size: int = 5
    pool_timeout: float = 30.0
    max_idle_time: float = 300.0


@dataclass
class SqliteOptions:
    """SQLite 연결 옵션"""
    busy_timeout: int = 5000
    journal_mode: str = 'WAL'
    synchronous: str = 'NORMAL'
    cache_size: int = -2000
    foreign_keys: bool = True


@dataclass
class PooledConnection:
    """풀에서 관리되는 연결"""
    connection: aiosqlite.Connection
    created_at: datetime = field(default_factory=datetime.now)
    last_used_at: datetime = field(default_factory=datetime.now)
    in_use: bool = False


class TransactionContext:
    """
    ManagedTransaction이 연 트랜잭션 하나에 대한 핸들

    aiosql 쿼리는 connection 속성을 그대로 받는다. readonly 트랜잭션은 연결 수준에서
    PRAGMA query_only로 잠겨 있으므로 aiosql 경로의 쓰기도 거부된다.
    """

    def __init__(self, connection: aiosqlite.Connection, readonly: bool = False):
        self._connection = connection
        self._readonly = readonly
        self._in_transaction = False

    @property
    def connection(self) -> aiosqlite.Connection:
        return self._connection

    @property
    def readonly(self) -> bool:
        return self._readonly

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    async def commit(self) -> None:
        """트랜잭션 커밋"""
        if not self._in_transaction:
            logger.warning("No active transaction to commit")
            return
        await self._connection.commit()
        self._in_transaction = False
        logger.debug("Transaction committed")

    async def rollback(self) -> None:
        """트랜잭션 롤백"""
        if not self._in_transaction:
            logger.warning("No active transaction to rollback")
            return
        await self._connection.rollback()
        self._in_transaction = False
        logger.debug("Transaction rolled back")

    async def execute(self, sql: str, parameters: Any = None) -> aiosqlite.Cursor:
        """원시 SQL 실행 (테스트 시드, 헬스체크용)"""
        if self._readonly and _is_write_query(sql):
            raise ReadOnlyTransactionError("Cannot execute write query in readonly transaction")
        return await self._connection.execute(sql, parameters or ())

    async def executemany(self, sql: str, parameters: list) -> aiosqlite.Cursor:
        if self._readonly and _is_write_query(sql):
            raise ReadOnlyTransactionError("Cannot execute write query in readonly transaction")
        return await self._connection.executemany(sql, parameters)

    async def fetch_all(self, sql: str, parameters: Any = None) -> list[aiosqlite.Row]:
        cursor = await self.execute(sql, parameters)
        return await cursor.fetchall()

    async def fetch_val(self, sql: str, parameters: Any = None) -> Any:
        cursor = await self.execute(sql, parameters)
        row = await cursor.fetchone()
        return row[0] if row else None


_WRITE_KEYWORDS = ('INSERT', 'UPDATE', 'DELETE', 'REPLACE', 'CREATE', 'DROP', 'ALTER')


def _is_write_query(sql: str) -> bool:
    return sql.lstrip().upper().startswith(_WRITE_KEYWORDS)


def _is_readonly_violation(exc: BaseException | None) -> bool:
    """query_only 상태에서 쓰기를 시도했을 때 SQLite가 내는 오류인지"""
    return isinstance(exc, sqlite3.OperationalError) and 'readonly' in str(exc)


def _trace_sql(statement: str) -> None:
    """
    연결별 trace 콜백 (aiosqlite 워커 스레드에서 호출)

    aiosql 쿼리와 ctx.execute 모두 이 콜백을 거치므로 SQL 디버그 로그는 여기 한 곳에서 남긴다.
    """
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(f"[SQL] {' '.join(statement.split())}")


class AsyncConnectionPool:
    """비동기 SQLite 커넥션풀 클래스"""

    def __init__(
        self,
        db_path: str,
        pool_config: PoolConfig | None = None,
        sqlite_options: SqliteOptions | None = None
    ):
        self._db_path = Path(db_path)
        self._pool_config = pool_config or PoolConfig()
        self._sqlite_options = sqlite_options or SqliteOptions()

        self._pool: list[PooledConnection] = []
        self._lock = asyncio.Lock()
        self._semaphore: asyncio.Semaphore | None = None
        self._initialized = False
        self._closed = False

        self._cleanup_task: asyncio.Task | None = None

    async def initialize(self) -> None:
        """커넥션풀 초기화"""
        if self._initialized:
            logger.warning("Connection pool already initialized")
            return

        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        self._semaphore = asyncio.Semaphore(self._pool_config.pool_size)

        for _ in range(self._pool_config.pool_size):
            conn = await self._create_connection()
            self._pool.append(PooledConnection(connection=conn))

        self._initialized = True
        self._cleanup_task = asyncio.create_task(self._cleanup_idle_connections())

        logger.info(
            f"Connection pool initialized: {self._db_path} "
            f"(size={self._pool_config.pool_size}, timeout={self._pool_config.pool_timeout}s)"
        )

    async def _create_connection(self) -> aiosqlite.Connection:
        """새로운 SQLite 연결 생성"""
        conn = await aiosqlite.connect(
            self._db_path,
            timeout=self._sqlite_options.busy_timeout / 1000.0
        )

        conn.row_factory = aiosqlite.Row

        await conn.execute(f"PRAGMA busy_timeout={self._sqlite_options.busy_timeout}")
        await conn.execute(f"PRAGMA journal_mode={self._sqlite_options.journal_mode}")
        await conn.execute(f"PRAGMA synchronous={self._sqlite_options.synchronous}")
        await conn.execute(f"PRAGMA cache_size={self._sqlite_options.cache_size}")
        await conn.execute(f"PRAGMA foreign_keys={'ON' if self._sqlite_options.foreign_keys else 'OFF'}")
        await conn.set_trace_callback(_trace_sql)

        logger.debug("New connection created with PRAGMA settings applied")
        return conn

    async def acquire(self, timeout: float | None = None) -> PooledConnection:
        """커넥션풀에서 연결 획득"""
        if not self._initialized:
            raise RuntimeError("Connection pool not initialized. Call initialize() first.")

        if self._closed:
            raise RuntimeError("Connection pool is closed.")

        timeout = timeout or self._pool_config.pool_timeout

        try:
            acquired = await asyncio.wait_for(
                self._semaphore.acquire(),
                timeout=timeout
            )
            if not acquired:
                raise ConnectionPoolExhaustedError(
                    f"Failed to acquire connection within {timeout}s"
                )
        except asyncio.TimeoutError:
            raise ConnectionPoolExhaustedError(
                f"Connection pool exhausted. Timeout after {timeout}s"
            )

        async with self._lock:
            for pooled_conn in self._pool:
                if not pooled_conn.in_use:
                    pooled_conn.in_use = True
                    pooled_conn.last_used_at = datetime.now()
                    return pooled_conn

        self._semaphore.release()
        raise ConnectionPoolExhaustedError("No available connection in pool")

    async def release(self, pooled_conn: PooledConnection) -> None:
        """연결을 풀에 반환"""
        async with self._lock:
            pooled_conn.in_use = False
            pooled_conn.last_used_at = datetime.now()
        self._semaphore.release()
        logger.debug(f"Connection released. Available: {self.available}/{self.size}")

    async def _cleanup_idle_connections(self) -> None:
        """유휴 연결 정리 (백그라운드 태스크)"""
        while not self._closed:
            await asyncio.sleep(60)

            async with self._lock:
                now = datetime.now()
                for pooled_conn in self._pool:
                    if not pooled_conn.in_use:
                        idle_time = (now - pooled_conn.last_used_at).total_seconds()
                        if idle_time > self._pool_config.max_idle_time:
                            try:
                                await pooled_conn.connection.close()
                                pooled_conn.connection = await self._create_connection()
                                pooled_conn.created_at = datetime.now()
                                pooled_conn.last_used_at = datetime.now()
                                logger.debug("Refreshed idle connection")
                            except Exception as e:
                                logger.error(f"Failed to refresh connection: {e}")

    async def close(self) -> None:
        """모든 연결을 닫고 풀 종료"""
        self._closed = True

        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass

        async with self._lock:
            for pooled_conn in self._pool:
                try:
                    await pooled_conn.connection.close()
                except Exception as e:
                    logger.error(f"Error closing connection: {e}")
            self._pool.clear()

        logger.info("Connection pool closed")

    @property
    def size(self) -> int:
        """현재 풀의 연결 수"""
        return len(self._pool)

    @property
    def available(self) -> int:
        """사용 가능한 연결 수"""
        return sum(1 for pc in self._pool if not pc.in_use)


class ManagedTransaction:
    """
    SQLite 트랜잭션 컨텍스트 매니저

    같은 태스크에서 이미 열린 트랜잭션이 있으면 새 연결을 잡지 않고 합류한다.
    합류한 경우 commit/rollback은 바깥 트랜잭션이 담당한다.
    """

    def __init__(self, db: 'SQLiteDatabase', readonly: bool = False):
        self._db = db
        self._readonly = readonly
        self._pooled_conn: PooledConnection | None = None
        self._ctx: TransactionContext | None = None
        self._joined = False

    async def __aenter__(self) -> TransactionContext:
        outer = get_current(self._db.name)
        if outer is not None:
            if outer.readonly and not self._readonly:
                raise ReadOnlyTransactionError("Cannot join readonly transaction for write")
            self._joined = True
            self._ctx = outer
            return outer

        self._pooled_conn = await self._db.pool.acquire()
        conn = self._pooled_conn.connection
        self._ctx = TransactionContext(conn, self._readonly)

        try:
            if self._readonly:
                await conn.execute("PRAGMA query_only = ON")
                await conn.execute("BEGIN DEFERRED")
            else:
                await conn.execute("BEGIN IMMEDIATE")
        except aiosqlite.Error as e:
            if self._readonly:
                await conn.execute("PRAGMA query_only = OFF")
            await self._db.pool.release(self._pooled_conn)
            raise TransactionError(f"Failed to begin transaction: {e}") from e
        self._ctx._in_transaction = True

        set_connection(self._db.name, self._ctx)
        return self._ctx

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._joined:
            return
        try:
            if exc_type:
                await self._ctx.rollback()
            else:
                await self._ctx.commit()
        finally:
            clear_connection(self._db.name)
            if self._readonly:
                await self._ctx.connection.execute("PRAGMA query_only = OFF")
            await self._db.pool.release(self._pooled_conn)

        if self._readonly and _is_readonly_violation(exc_val):
            raise ReadOnlyTransactionError(f"Write attempted in readonly transaction: {exc_val}") from exc_val


class SQLiteDatabase(BaseDatabase):
    """
    SQLite 데이터베이스 구현

    사용 예시:
        db = await SQLiteDatabase.create('default', config)
        queries = db.load_queries('batch', 'batch/sql')

        async with db.transaction() as ctx:
            await queries.get_configs(ctx.connection)
    """

    def __init__(self, name: str, config: dict[str, Any]):
        super().__init__(name)
        self._config = config
        self._pool: AsyncConnectionPool | None = None
        self._queries: dict[str, Any] = {}

    @classmethod
    async def create(cls, name: str, config: dict[str, Any]) -> 'SQLiteDatabase':
        """SQLiteDatabase 인스턴스 생성 및 초기화"""
        instance = cls(name, config)
        await instance._initialize()
        return instance

    async def _initialize(self) -> None:
        """내부 초기화"""
        pool_cfg = self._config.get('pool', {})
        pool_config = PoolConfig(
            pool_size=pool_cfg.get('pool_size', 5),
            pool_timeout=pool_cfg.get('pool_timeout', 30.0),
            max_idle_time=pool_cfg.get('max_idle_time', 300.0)
        )

        opts = self._config.get('options', {})
        sqlite_options = SqliteOptions(
            busy_timeout=opts.get('busy_timeout', 5000),
            journal_mode=opts.get('journal_mode', 'WAL'),
            synchronous=opts.get('synchronous', 'NORMAL'),
            cache_size=opts.get('cache_size', -2000),
            foreign_keys=opts.get('foreign_keys', True)
        )

        self._pool = AsyncConnectionPool(
            db_path=self._config.get('path', f'./data/{self.name}.db'),
            pool_config=pool_config,
            sqlite_options=sqlite_options
        )
        await self._pool.initialize()

        await self._run_init_sql()

        logger.info(f"SQLiteDatabase '{self.name}' initialized successfully")

    async def _run_init_sql(self) -> None:
        """초기 테이블 생성 SQL 실행"""
        init_sql_path = Path(__file__).parent / 'sql' / 'init.sql'
        if init_sql_path.exists():
            queries = aiosql.from_path(str(init_sql_path), "aiosqlite")
            pooled_conn = await self._pool.acquire()
            try:
                await queries.create_batch_tables(pooled_conn.connection)
                await queries.create_account_tables(pooled_conn.connection)
                await queries.create_indexes(pooled_conn.connection)
                await pooled_conn.connection.commit()
                logger.info("Initial tables created from init.sql")
            finally:
                await self._pool.release(pooled_conn)
        else:
            logger.warning(f"init.sql not found: {init_sql_path}")

    def transaction(self, readonly: bool = False) -> ManagedTransaction:
        """트랜잭션 컨텍스트 매니저 반환"""
        return ManagedTransaction(self, readonly)

    @property
    def pool(self) -> AsyncConnectionPool:
        """커넥션풀 반환"""
        if self._pool is None:
            raise RuntimeError(f"Database '{self.name}' not initialized")
        return self._pool

    def load_queries(self, name: str, sql_path: str) -> Queries:
        """aiosql로 SQL 파일 로드"""
        queries = aiosql.from_path(sql_path, "aiosqlite")
        self._queries[name] = queries
        return queries

    def get_queries(self, name: str) -> Queries | None:
        """로드된 쿼리 세트 반환"""
        return self._queries.get(name)

    async def close(self) -> None:
        """데이터베이스 연결 종료"""
        if self._pool:
            await self._pool.close()
        logger.info(f"SQLiteDatabase '{self.name}' closed")

