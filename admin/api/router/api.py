"""Admin API 라우터 (모든 API 통합)"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from batch import (
    ConfigDuplicateError,
    ConfigNotFoundError,
    ExecutionNotFoundError,
    JobConflictError,
    JobValidationError,
)
from batch.model import (
    AccountResult,
    AccountResultStatus,
    AccountStatus,
    BatchSummary,
    Execution,
    ExecutionStatus,
    JobConfig,
    JobConfigCreate,
    JobConfigUpdate,
    JobType,
)
from admin.api.handler.batch import InterestBatchHandler
from admin.api.model.batch import JobTypeInfo, TriggerJobRequest
from admin.api.model.common import PageResponse
from admin.exception import AccountStatusNotFoundError, ConfigValidationError

logger = logging.getLogger(__name__)

router = APIRouter()

PREFIX = "/api/interest-batch"

_JOB_TYPE_DESCRIPTIONS = {
    JobType.DAILY_INTEREST_ACCRUAL: "활성 계좌 일일 이자 계산",
    JobType.INTEREST_POSTING: "지급일 도래 계좌 이자 지급",
}


def get_handler(request: Request) -> InterestBatchHandler:
    """앱 상태에 등록된 핸들러"""
    return request.app.state.batch_handler


# ============================================
# 실행 API
# ============================================

@router.post(f"{PREFIX}/executions", response_model=Execution, status_code=202, tags=["Execution"])
async def trigger_job(request: TriggerJobRequest, handler: InterestBatchHandler = Depends(get_handler)):
    """배치 실행 (즉시 반환, 처리는 백그라운드)"""
    try:
        return await handler.trigger(request.job_type, request.parameters, request.account_ids)
    except JobValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except JobConflictError as e:
        raise HTTPException(status_code=409, detail=e.message)


@router.get(f"{PREFIX}/executions", response_model=PageResponse[Execution], tags=["Execution"])
async def get_executions(
    page: int = Query(default=1, ge=1, description="페이지 번호"),
    size: int = Query(default=20, ge=1, le=100, description="페이지 크기"),
    job_type: JobType | None = Query(default=None, description="잡 타입 필터"),
    status: ExecutionStatus | None = Query(default=None, description="상태 필터"),
    date_from: datetime | None = Query(default=None, description="시작일 (started_at >=)"),
    date_to: datetime | None = Query(default=None, description="종료일 (started_at <=)"),
    handler: InterestBatchHandler = Depends(get_handler),
):
    """실행 이력 목록 조회 (최신순)"""
    items, total = await handler.get_execution_list(
        page=page,
        size=size,
        job_type=job_type,
        status=status,
        date_from=date_from,
        date_to=date_to,
    )
    return PageResponse[Execution].create(items, total, page, size)


@router.get(f"{PREFIX}/executions/{{execution_id}}", response_model=Execution, tags=["Execution"])
async def get_execution(execution_id: str, handler: InterestBatchHandler = Depends(get_handler)):
    """실행 상세 조회"""
    execution = await handler.get_execution(execution_id)
    if execution is None:
        raise HTTPException(status_code=404, detail=ExecutionNotFoundError(execution_id).message)
    return execution


@router.post(f"{PREFIX}/executions/{{execution_id}}/cancel", response_model=Execution, tags=["Execution"])
async def cancel_execution(execution_id: str, handler: InterestBatchHandler = Depends(get_handler)):
    """실행 취소 (종료된 실행은 그대로 반환)"""
    try:
        return await handler.cancel(execution_id)
    except ExecutionNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.get(
    f"{PREFIX}/executions/{{execution_id}}/results",
    response_model=PageResponse[AccountResult],
    tags=["Execution"],
)
async def get_account_results(
    execution_id: str,
    page: int = Query(default=1, ge=1, description="페이지 번호"),
    size: int = Query(default=100, ge=1, le=500, description="페이지 크기"),
    status: AccountResultStatus | None = Query(default=None, description="결과 상태 필터"),
    handler: InterestBatchHandler = Depends(get_handler),
):
    """실행별 계좌 처리 결과 조회"""
    items, total = await handler.get_result_list(execution_id, page=page, size=size, status=status)
    return PageResponse[AccountResult].create(items, total, page, size)


@router.get(f"{PREFIX}/summary", response_model=BatchSummary, tags=["Execution"])
async def get_summary(request: Request):
    """오늘 처리 현황 요약"""
    return await request.app.state.engine.get_summary()


@router.get(f"{PREFIX}/accounts/{{account_id}}/status", response_model=AccountStatus, tags=["Account"])
async def get_account_status(account_id: str, handler: InterestBatchHandler = Depends(get_handler)):
    """계좌 이자 스케줄 상태 조회"""
    try:
        return await handler.get_account_status(account_id)
    except AccountStatusNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


# ============================================
# 설정 API
# ============================================

@router.get(f"{PREFIX}/job-types", response_model=list[JobTypeInfo], tags=["Config"])
async def get_job_types():
    """지원 잡 타입 목록"""
    return [JobTypeInfo(job_type=t, description=d) for t, d in _JOB_TYPE_DESCRIPTIONS.items()]


@router.get(f"{PREFIX}/configs", response_model=list[JobConfig], tags=["Config"])
async def get_configs(request: Request):
    """배치 설정 목록"""
    return await request.app.state.engine.get_configs()


@router.get(f"{PREFIX}/configs/{{job_type}}", response_model=JobConfig, tags=["Config"])
async def get_config(job_type: JobType, request: Request):
    """잡 타입별 배치 설정"""
    config = await request.app.state.engine.get_config(job_type.value)
    if config is None:
        raise HTTPException(status_code=404, detail=ConfigNotFoundError(job_type.value).message)
    return config


@router.post(f"{PREFIX}/configs", response_model=JobConfig, status_code=201, tags=["Config"])
async def create_config(request: JobConfigCreate, handler: InterestBatchHandler = Depends(get_handler)):
    """배치 설정 생성"""
    try:
        return await handler.create_config(request)
    except ConfigValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except ConfigDuplicateError as e:
        raise HTTPException(status_code=409, detail=e.message)


@router.put(f"{PREFIX}/configs/{{job_type}}", response_model=JobConfig, tags=["Config"])
async def update_config(
    job_type: JobType,
    request: JobConfigUpdate,
    handler: InterestBatchHandler = Depends(get_handler),
):
    """배치 설정 부분 수정 (요청에 포함된 필드만 반영)"""
    try:
        return await handler.update_config(job_type, request)
    except ConfigNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except ConfigValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)


# ============================================
# Health Check
# ============================================

@router.get("/health", tags=["Health"])
async def health_check(request: Request):
    """서버 상태 확인 (liveness probe)"""
    engine = request.app.state.engine
    try:
        db = engine.database
        db_status = "connected" if db.pool.available > 0 else "busy"
    except Exception:
        db_status = "disconnected"

    return {
        "status": "healthy",
        "database": db_status,
        "running_executions": engine.running_task_count,
        "version": "1.0.0",
    }


@router.get("/ready", tags=["Health"])
async def ready_check(request: Request):
    """DB 연결 상태 확인 (readiness probe)"""
    try:
        db = request.app.state.engine.database
        async with db.transaction(readonly=True) as ctx:
            await ctx.fetch_val("SELECT 1")
        return {"status": "ready", "database": "ok"}
    except Exception as e:
        return JSONResponse(
            status_code=503,
            content={"status": "not ready", "error": str(e)}
        )
