"""Admin API 모델 패키지"""

from admin.api.model.common import PageResponse
from admin.api.model.batch import TriggerJobRequest, JobTypeInfo

__all__ = [
    'PageResponse',
    'TriggerJobRequest',
    'JobTypeInfo',
]
