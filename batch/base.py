from abc import ABC, abstractmethod

from batch.calculator import InterestCalculator
from batch.exception import HandlerNotFoundError
from batch.model.account import CalculationOutcome, EligibleAccount, LedgerUpdate

__all__ = [
    'job_handler',
    'get_job_handler',
    'get_registered_handlers',
    'BaseJobHandler',
    'HandlerNotFoundError',
]

# 잡 타입별 핸들러 레지스트리 (모듈 레벨)
_registry: dict[str, type["BaseJobHandler"]] = {}


def job_handler(job_type: str):
    """잡 핸들러 등록 데코레이터"""
    def decorator(cls):
        _registry[str(getattr(job_type, 'value', job_type))] = cls
        return cls
    return decorator


def get_job_handler(job_type: str) -> "BaseJobHandler":
    """잡 타입에 해당하는 핸들러 인스턴스 반환"""
    key = str(getattr(job_type, 'value', job_type))
    if key not in _registry:
        raise HandlerNotFoundError(key)
    return _registry[key]()


def get_registered_handlers() -> dict[str, type["BaseJobHandler"]]:
    """등록된 핸들러 목록 반환 (테스트용)"""
    return _registry.copy()


class BaseJobHandler(ABC):
    """
    잡 타입별 처리 규칙

    due_only가 True이면 계좌 선정 시 지급일이 도래한 계좌만 대상으로 한다.
    """

    due_only: bool = False

    @abstractmethod
    async def calculate(self, calculator: InterestCalculator, account: EligibleAccount) -> CalculationOutcome:
        """
        계좌 하나에 대해 이자 계산 엔진 호출

        Args:
            calculator: 이자 계산 클라이언트
            account: 처리 대상 계좌

        Returns:
            정규화된 계산 결과 (비즈니스 실패는 success=False)

        Raises:
            Exception: 인프라 장애 (호출측에서 FAILED로 기록)
        """
        pass

    @abstractmethod
    def ledger_update(self, account: EligibleAccount, outcome: CalculationOutcome) -> LedgerUpdate:
        """성공 결과를 계좌 스케줄 상태 변경분으로 변환"""
        pass
