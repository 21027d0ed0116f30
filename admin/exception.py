"""
Admin 관련 예외 클래스 정의
"""


class AdminError(Exception):
    """Admin 기본 예외"""
    pass


class ConfigValidationError(AdminError):
    """배치 설정 유효성 검사 실패 (크론 표현식 등)"""
    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class AccountStatusNotFoundError(AdminError):
    """계좌 스케줄 상태를 찾을 수 없음"""
    def __init__(self, account_id: str):
        self.account_id = account_id
        self.message = f"No interest schedule status for account {account_id}"
        super().__init__(self.message)
