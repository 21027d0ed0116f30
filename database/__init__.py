"""
비동기 데이터베이스 패키지

사용 예시:
    from database import get_db, get_connection
    from database.registry import DatabaseRegistry

    await DatabaseRegistry.init_from_config(config)
    db = get_db('default')

    async with db.transaction() as ctx:
        await ctx.execute("INSERT INTO ...")
"""

from database.context import get_connection
from database.exception import (
    DatabaseError,
    ConnectionPoolExhaustedError,
    TransactionError,
    ReadOnlyTransactionError,
)
from database.registry import DatabaseRegistry, get_db

__all__ = [
    'get_connection',
    'get_db',
    'DatabaseRegistry',
    'DatabaseError',
    'ConnectionPoolExhaustedError',
    'TransactionError',
    'ReadOnlyTransactionError',
]
