"""
이자 배치 엔진 예외 클래스 정의
"""


class BatchError(Exception):
    """배치 엔진 기본 예외"""
    pass


class JobValidationError(BatchError):
    """잡 실행 요청 유효성 검사 실패 (지원하지 않는 잡 타입, 설정 없음/비활성)"""
    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class JobConflictError(BatchError):
    """같은 잡 타입의 실행이 이미 RUNNING 상태"""
    def __init__(self, job_type: str):
        self.job_type = job_type
        self.message = f"A job of type {job_type} is already running"
        super().__init__(self.message)


class ExecutionNotFoundError(BatchError):
    """배치 실행 이력을 찾을 수 없음"""
    def __init__(self, execution_id: str):
        self.execution_id = execution_id
        self.message = f"Batch execution with id {execution_id} not found"
        super().__init__(self.message)


class ConfigNotFoundError(BatchError):
    """배치 설정을 찾을 수 없음"""
    def __init__(self, job_type: str):
        self.job_type = job_type
        self.message = f"No configuration found for job type: {job_type}"
        super().__init__(self.message)


class ConfigDuplicateError(BatchError):
    """같은 잡 타입의 설정이 이미 존재"""
    def __init__(self, job_type: str):
        self.job_type = job_type
        self.message = f"Configuration for job type '{job_type}' already exists"
        super().__init__(self.message)


class HandlerNotFoundError(BatchError):
    """잡 타입에 등록된 핸들러 없음"""
    def __init__(self, job_type: str):
        self.job_type = job_type
        self.message = f"Handler not found for job type: {job_type}"
        super().__init__(self.message)


class CalculationError(BatchError):
    """이자 계산 서비스 호출 실패 (인프라 장애, 비즈니스 실패는 success=false 응답)"""
    def __init__(self, account_id: str, operation: str, message: str):
        self.account_id = account_id
        self.operation = operation
        self.message = f"{operation} failed for account {account_id}: {message}"
        super().__init__(self.message)


class OrchestrationError(BatchError):
    """계좌 단위 처리 밖에서 발생한 실패 (계좌 선정 등), 실행을 FAILED로 종료"""
    def __init__(self, execution_id: str, stage: str, message: str):
        self.execution_id = execution_id
        self.stage = stage
        self.message = f"Batch execution {execution_id} failed during {stage}: {message}"
        super().__init__(self.message)
