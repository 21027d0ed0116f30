"""잡 타입별 배치 설정 저장소"""

import json
import logging
import uuid

import aiosqlite
from aiosql.queries import Queries

from database.base import BaseDatabase
from batch.exception import ConfigDuplicateError, ConfigNotFoundError
from batch.model import JobConfig, JobConfigCreate, JobConfigUpdate
from batch.timeutil import format_timestamp, utcnow

logger = logging.getLogger(__name__)

# 수정 요청에서 null로 지울 수 있는 필드
_CLEARABLE_FIELDS = frozenset({'description', 'cron_expression'})


def _type_value(job_type) -> str:
    return str(getattr(job_type, 'value', job_type))


class JobConfigStore:
    """interest_batch_config 조회/생성/부분 수정"""

    def __init__(self, db: BaseDatabase, queries: Queries):
        self._db = db
        self._queries = queries

    @staticmethod
    def _row_to_config(row) -> JobConfig:
        data = dict(row)
        data['account_types'] = json.loads(data['account_types'] or '[]')
        data['parameters'] = json.loads(data['parameters'] or '{}')
        data['enabled'] = bool(data['enabled'])
        return JobConfig.model_validate(data)

    @staticmethod
    def _to_params(config: dict) -> dict:
        return {
            'batch_size': config['batch_size'],
            'max_retries': config['max_retries'],
            'retry_interval_minutes': config['retry_interval_minutes'],
            'timeout_seconds': config['timeout_seconds'],
            'parallel_threads': config['parallel_threads'],
            'enabled': int(config['enabled']),
            'description': config['description'],
            'account_types': json.dumps(list(config['account_types'])),
            'parameters': json.dumps(config['parameters'] or {}, default=str),
            'cron_expression': config['cron_expression'],
        }

    async def get_all(self) -> list[JobConfig]:
        """전체 설정 조회 (job_type 순)"""
        async with self._db.transaction(readonly=True) as ctx:
            rows = await self._queries.get_configs(ctx.connection)
        return [self._row_to_config(row) for row in rows]

    async def list_scheduled(self) -> list[JobConfig]:
        """크론 표현식이 있는 활성 설정"""
        async with self._db.transaction(readonly=True) as ctx:
            rows = await self._queries.get_enabled_scheduled_configs(ctx.connection)
        return [self._row_to_config(row) for row in rows]

    async def get(self, job_type: str) -> JobConfig | None:
        async with self._db.transaction(readonly=True) as ctx:
            row = await self._queries.get_config_by_type(ctx.connection, job_type=_type_value(job_type))
        return self._row_to_config(row) if row else None

    async def create(self, request: JobConfigCreate) -> JobConfig:
        """설정 생성 (job_type당 하나)"""
        job_type = request.job_type.value
        params = self._to_params(request.model_dump())

        try:
            async with self._db.transaction() as ctx:
                existing = await self._queries.get_config_by_type(ctx.connection, job_type=job_type)
                if existing:
                    raise ConfigDuplicateError(job_type)

                await self._queries.insert_config(
                    ctx.connection,
                    id=str(uuid.uuid4()),
                    job_type=job_type,
                    now=format_timestamp(utcnow()),
                    **params,
                )
        except aiosqlite.IntegrityError as e:
            raise ConfigDuplicateError(job_type) from e

        logger.info(f"Batch config created: {job_type}")
        return await self.get(job_type)

    async def update(self, job_type: str, request: JobConfigUpdate) -> JobConfig:
        """
        설정 부분 수정

        요청에 명시된 필드만 기존 값 위에 덮어쓴다.
        NOT NULL 필드에 null이 오면 무시하고, description/cron_expression만 null로 지울 수 있다.
        """
        job_type = _type_value(job_type)
        changes = request.model_dump(exclude_unset=True)

        async with self._db.transaction() as ctx:
            row = await self._queries.get_config_by_type(ctx.connection, job_type=job_type)
            if not row:
                raise ConfigNotFoundError(job_type)

            merged = self._row_to_config(row).model_dump()
            for key, value in changes.items():
                if value is None and key not in _CLEARABLE_FIELDS:
                    continue
                merged[key] = value

            await self._queries.update_config(
                ctx.connection,
                job_type=job_type,
                now=format_timestamp(utcnow()),
                **self._to_params(merged),
            )

        logger.info(f"Batch config updated: {job_type} fields={sorted(changes)}")
        return await self.get(job_type)
