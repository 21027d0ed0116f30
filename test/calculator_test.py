"""
HttpInterestCalculator 테스트 (httpx.MockTransport)

실행: python -m pytest test/calculator_test.py -v
"""

import sys
from datetime import date
from decimal import Decimal
from pathlib import Path

import httpx
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from batch import CalculationError, HttpInterestCalculator

BASE_URL = "http://calculator.test"


def make_calculator(handler) -> HttpInterestCalculator:
    client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
    return HttpInterestCalculator(BASE_URL, client=client)


class TestHttpInterestCalculator:

    @pytest.mark.asyncio
    async def test_accrual_success(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={
                "success": True,
                "request_id": "r-1",
                "interest_calculated": "1.2345",
                "calculation_date": "2024-01-15",
            })

        async with make_calculator(handler) as calculator:
            result = await calculator.calculate_daily_interest("ACC-1")

        assert result.success is True
        assert result.interest_calculated == Decimal("1.2345")
        assert result.calculation_date == date(2024, 1, 15)
        assert requests[0].method == "POST"
        assert requests[0].url.path == "/savings/ACC-1/interest/accrue"

    @pytest.mark.asyncio
    async def test_posting_business_failure(self):
        """success=false는 예외 없이 그대로 반환"""
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/savings/ACC-2/interest/post"
            return httpx.Response(200, json={"success": False, "error_message": "Account is frozen"})

        async with make_calculator(handler) as calculator:
            result = await calculator.post_interest("ACC-2")

        assert result.success is False
        assert result.error_message == "Account is frozen"
        assert result.interest_posted is None

    @pytest.mark.asyncio
    async def test_camel_case_response(self):
        """계산 서비스의 camelCase 필드명도 그대로 읽음"""
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={
                "success": True,
                "interestPosted": "12.50",
                "taxAmount": "1.93",
                "postingDate": "2024-01-31",
            })

        async with make_calculator(handler) as calculator:
            result = await calculator.post_interest("ACC-3")

        assert result.interest_posted == Decimal("12.50")
        assert result.tax_amount == Decimal("1.93")
        assert result.posting_date == date(2024, 1, 31)

    @pytest.mark.asyncio
    async def test_camel_case_failure_message(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"success": False, "errorMessage": "Account is closed"})

        async with make_calculator(handler) as calculator:
            result = await calculator.calculate_daily_interest("ACC-4")

        assert result.success is False
        assert result.error_message == "Account is closed"

    @pytest.mark.asyncio
    async def test_server_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, text="maintenance")

        async with make_calculator(handler) as calculator:
            with pytest.raises(CalculationError) as exc_info:
                await calculator.post_interest("ACC-3")

        assert exc_info.value.account_id == "ACC-3"
        assert exc_info.value.operation == "post_interest"

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with make_calculator(handler) as calculator:
            with pytest.raises(CalculationError) as exc_info:
                await calculator.calculate_daily_interest("ACC-4")

        assert "connection refused" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_invalid_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>oops</html>")

        async with make_calculator(handler) as calculator:
            with pytest.raises(CalculationError):
                await calculator.calculate_daily_interest("ACC-5")

    @pytest.mark.asyncio
    async def test_unexpected_payload(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"status": "ok"})

        async with make_calculator(handler) as calculator:
            with pytest.raises(CalculationError):
                await calculator.post_interest("ACC-6")

    @pytest.mark.asyncio
    async def test_shared_client_not_closed(self):
        client = httpx.AsyncClient(
            base_url=BASE_URL,
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"success": True})),
        )
        calculator = HttpInterestCalculator(BASE_URL, client=client)
        await calculator.close()

        assert not client.is_closed
        await client.aclose()

    @pytest.mark.asyncio
    async def test_api_key_header(self):
        calculator = HttpInterestCalculator(BASE_URL, api_key="secret")
        try:
            assert calculator.client.headers["X-API-Key"] == "secret"
        finally:
            await calculator.close()
        assert calculator.client.is_closed
