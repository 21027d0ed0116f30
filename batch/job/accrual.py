"""일일 이자 계산 잡"""

from batch.base import BaseJobHandler, job_handler
from batch.calculator import InterestCalculator
from batch.model import CalculationOutcome, EligibleAccount, JobType, LedgerUpdate
from batch.timeutil import utctoday


@job_handler(JobType.DAILY_INTEREST_ACCRUAL)
class DailyAccrualHandler(BaseJobHandler):
    """활성 계좌 전체의 일일 이자 계산"""

    async def calculate(self, calculator: InterestCalculator, account: EligibleAccount) -> CalculationOutcome:
        result = await calculator.calculate_daily_interest(account.account_id)
        if not result.success:
            return CalculationOutcome(
                success=False,
                error_message=result.error_message or "Daily interest calculation failed",
            )
        return CalculationOutcome(
            success=True,
            interest_calculated=result.interest_calculated,
            effective_date=result.calculation_date,
        )

    def ledger_update(self, account: EligibleAccount, outcome: CalculationOutcome) -> LedgerUpdate:
        return LedgerUpdate(last_accrual_date=outcome.effective_date or utctoday())
