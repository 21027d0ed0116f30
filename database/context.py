"""
현재 태스크의 트랜잭션 컨텍스트 관리

contextvars 기반이므로 asyncio 태스크마다 독립된 값을 가진다.
태스크 생성 시점의 값이 복사되므로 dict는 항상 새로 만들어 교체한다.
"""

from contextvars import ContextVar
from typing import Any

_connections: ContextVar[dict[str, Any] | None] = ContextVar('db_connections', default=None)


def set_connection(name: str, ctx: Any) -> None:
    """DB 이름에 트랜잭션 컨텍스트 바인딩"""
    current = _connections.get() or {}
    _connections.set({**current, name: ctx})


def clear_connection(name: str) -> None:
    """DB 이름의 트랜잭션 컨텍스트 해제"""
    current = _connections.get() or {}
    if name in current:
        _connections.set({k: v for k, v in current.items() if k != name})


def get_current(name: str) -> Any | None:
    """현재 트랜잭션 컨텍스트 반환 (없으면 None)"""
    current = _connections.get() or {}
    return current.get(name)


def get_connection(name: str = 'default') -> Any:
    """현재 트랜잭션 컨텍스트 반환 (없으면 RuntimeError)"""
    ctx = get_current(name)
    if ctx is None:
        raise RuntimeError(f"No active transaction for database '{name}'")
    return ctx


def detach_all() -> None:
    """현재 컨텍스트의 모든 바인딩 제거 (백그라운드 태스크 시작 시)"""
    _connections.set(None)
