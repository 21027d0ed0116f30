"""
이자 계산 서비스 클라이언트

코어뱅킹의 계좌별 이자 계산/지급 API를 호출한다.
비즈니스 실패는 success=false 응답으로 받고, 전송 오류나 2xx가 아닌 응답만 CalculationError로 올린다.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx
from pydantic import ValidationError

from batch.exception import CalculationError
from batch.model.calculation import AccrualResult, PostingResult

logger = logging.getLogger(__name__)


class InterestCalculator(ABC):
    """이자 계산 엔진 인터페이스"""

    @abstractmethod
    async def calculate_daily_interest(self, account_id: str) -> AccrualResult:
        """일일 이자 계산"""
        pass

    @abstractmethod
    async def post_interest(self, account_id: str) -> PostingResult:
        """누적 이자 지급 (세금 차감 후 입금)"""
        pass

    async def close(self) -> None:
        """리소스 정리"""
        pass


class HttpInterestCalculator(InterestCalculator):
    """HTTP 기반 이자 계산 클라이언트"""

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["X-API-Key"] = api_key

        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def calculate_daily_interest(self, account_id: str) -> AccrualResult:
        data = await self._post(account_id, f"/savings/{account_id}/interest/accrue", "calculate_daily_interest")
        return self._parse(AccrualResult, data, account_id, "calculate_daily_interest")

    async def post_interest(self, account_id: str) -> PostingResult:
        data = await self._post(account_id, f"/savings/{account_id}/interest/post", "post_interest")
        return self._parse(PostingResult, data, account_id, "post_interest")

    async def _post(self, account_id: str, path: str, operation: str) -> dict[str, Any]:
        try:
            response = await self.client.post(path)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as e:
            logger.warning(f"Interest calculation call failed: {operation} account={account_id}: {e}")
            raise CalculationError(account_id, operation, str(e)) from e
        except ValueError as e:
            raise CalculationError(account_id, operation, f"Invalid JSON response: {e}") from e

    @staticmethod
    def _parse(model, data: dict[str, Any], account_id: str, operation: str):
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise CalculationError(account_id, operation, f"Unexpected response: {e}") from e

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()
