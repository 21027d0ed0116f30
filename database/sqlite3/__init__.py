"""
SQLite3 비동기 데이터베이스 패키지

사용 예시:
    from database import get_connection
    from database.registry import DatabaseRegistry

    # 초기화 (config에서)
    await DatabaseRegistry.init_from_config(config)
    db = DatabaseRegistry.get('default')

    # 트랜잭션 (같은 태스크 안에서 중첩하면 바깥 트랜잭션에 합류)
    async with db.transaction() as ctx:
        await ctx.execute("INSERT INTO ...")

    # 하위 함수에서 현재 트랜잭션 조회
    ctx = get_connection('default')
"""

from database.sqlite3.connection import (
    SQLiteDatabase,
    AsyncConnectionPool,
    TransactionContext,
    ManagedTransaction,
    PoolConfig,
    SqliteOptions,
    PooledConnection,
)

__all__ = [
    'SQLiteDatabase',
    'AsyncConnectionPool',
    'TransactionContext',
    'ManagedTransaction',
    'PoolConfig',
    'SqliteOptions',
    'PooledConnection',
]
