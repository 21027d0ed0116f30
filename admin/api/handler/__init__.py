"""Admin API 핸들러 패키지"""

from admin.api.handler.batch import InterestBatchHandler

__all__ = ['InterestBatchHandler']
