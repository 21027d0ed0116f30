"""
데이터베이스 레지스트리

database.yaml의 `databases` 항목을 읽어 이름별 인스턴스를 생성/보관한다.

설정 예시:
    databases:
      default:
        type: sqlite3
        path: ./data/interest_batch.db
        pool:
          pool_size: 5
"""

import logging
from typing import Any

from database.base import BaseDatabase
from database.sqlite3.connection import SQLiteDatabase

logger = logging.getLogger(__name__)

_DRIVERS: dict[str, type[SQLiteDatabase]] = {
    'sqlite3': SQLiteDatabase,
}


class DatabaseRegistry:
    """이름별 데이터베이스 인스턴스 레지스트리"""

    _databases: dict[str, BaseDatabase] = {}

    @classmethod
    async def init_from_config(cls, config: dict[str, Any], names: list[str] | None = None) -> None:
        """
        설정에서 데이터베이스 초기화

        Args:
            config: database.yaml 내용 (databases 키 포함)
            names: 초기화할 DB 이름 목록 (None이면 전체)
        """
        db_configs = config.get('databases', {})
        targets = names if names is not None else list(db_configs.keys())

        for name in targets:
            if name in cls._databases:
                continue
            if name not in db_configs:
                raise KeyError(f"Database '{name}' is not defined in config")

            db_config = db_configs[name]
            db_type = db_config.get('type', 'sqlite3')
            driver = _DRIVERS.get(db_type)
            if driver is None:
                raise ValueError(f"Unsupported database type: {db_type}")

            cls._databases[name] = await driver.create(name, db_config)
            logger.info(f"Database registered: {name} ({db_type})")

    @classmethod
    def get(cls, name: str = 'default') -> BaseDatabase:
        if name not in cls._databases:
            raise KeyError(f"Database '{name}' is not registered")
        return cls._databases[name]

    @classmethod
    async def close_all(cls) -> None:
        """등록된 모든 DB 종료"""
        for name, db in list(cls._databases.items()):
            try:
                await db.close()
            except Exception as e:
                logger.error(f"Error closing database '{name}': {e}")
        cls._databases.clear()

    @classmethod
    def clear(cls) -> None:
        """레지스트리 초기화 (테스트용, 연결은 닫지 않음)"""
        cls._databases.clear()


def get_db(name: str = 'default') -> BaseDatabase:
    """등록된 데이터베이스 반환"""
    return DatabaseRegistry.get(name)
