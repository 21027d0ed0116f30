"""이자 지급 잡"""

from batch.base import BaseJobHandler, job_handler
from batch.calculator import InterestCalculator
from batch.model import CalculationOutcome, EligibleAccount, JobType, LedgerUpdate
from batch.schedule import next_posting_date
from batch.timeutil import utctoday


@job_handler(JobType.INTEREST_POSTING)
class InterestPostingHandler(BaseJobHandler):
    """
    지급일이 도래한 계좌의 이자 지급

    지급 성공 시 지급일을 기준으로 계좌의 지급 주기만큼 다음 지급일을 전진시킨다.
    """

    due_only = True

    async def calculate(self, calculator: InterestCalculator, account: EligibleAccount) -> CalculationOutcome:
        result = await calculator.post_interest(account.account_id)
        if not result.success:
            return CalculationOutcome(
                success=False,
                error_message=result.error_message or "Interest posting failed",
            )
        return CalculationOutcome(
            success=True,
            interest_posted=result.interest_posted,
            tax_amount=result.tax_amount,
            effective_date=result.posting_date,
        )

    def ledger_update(self, account: EligibleAccount, outcome: CalculationOutcome) -> LedgerUpdate:
        posting_date = outcome.effective_date or utctoday()
        return LedgerUpdate(
            last_posting_date=posting_date,
            next_posting_date=next_posting_date(posting_date, account.posting_frequency),
        )
