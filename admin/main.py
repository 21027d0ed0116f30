"""Admin API 서버 진입점"""

import logging
from pathlib import Path
from contextlib import asynccontextmanager

import yaml
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from database.registry import DatabaseRegistry
from batch import InterestBatchEngine, create_engine
from admin.api.handler.batch import InterestBatchHandler
from admin.api.router.api import router

logger = logging.getLogger(__name__)

CONFIG_DIR = Path(__file__).parent.parent / "config"


def load_config(config_dir: Path = CONFIG_DIR) -> dict:
    """설정 파일 로드 (admin.yaml, database.yaml, batch.yaml, dispatcher.yaml)"""
    config: dict = {}
    for name in ("admin.yaml", "database.yaml", "batch.yaml", "dispatcher.yaml"):
        path = config_dir / name
        if not path.exists():
            continue
        with open(path, 'r', encoding='utf-8') as f:
            config.update(yaml.safe_load(f) or {})
    return config


def create_app(config: dict | None = None, engine: InterestBatchEngine | None = None) -> FastAPI:
    """
    FastAPI 앱 생성

    Args:
        config: 병합된 설정 (None이면 config/*.yaml 로드)
        engine: 외부에서 만든 엔진 (None이면 lifespan에서 DB 초기화 후 생성하고 종료 시 정리)
    """
    config = config if config is not None else load_config()
    admin_config = config.get('admin', {})
    min_cron_interval = config.get('dispatcher', {}).get('min_cron_interval_seconds', 60)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """앱 생명주기 관리"""
        owns_engine = engine is None
        if owns_engine:
            batch_config = config.get('batch', {})
            await DatabaseRegistry.init_from_config(config, [batch_config.get('database', 'default')])
            logger.info("Database initialized")
            app_engine = create_engine(batch_config)
            await app_engine.recover_interrupted()
        else:
            app_engine = engine

        app.state.engine = app_engine
        app.state.batch_handler = InterestBatchHandler(app_engine, min_cron_interval)

        yield

        if owns_engine:
            await app_engine.close()
            await DatabaseRegistry.close_all()
            logger.info("Database closed")

    app = FastAPI(
        title="Interest Batch Admin API",
        description="이자 배치 실행/설정 관리 Admin API",
        version="1.0.0",
        lifespan=lifespan,
    )

    # CORS 설정
    cors_config = admin_config.get('cors', {})
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_config.get('origins', ['*']),
        allow_credentials=cors_config.get('allow_credentials', True),
        allow_methods=cors_config.get('allow_methods', ['*']),
        allow_headers=cors_config.get('allow_headers', ['*']),
    )

    app.include_router(router)
    return app


if __name__ == "__main__":
    import uvicorn
    from common.logging import setup_logging_from_config

    config = load_config()
    setup_logging_from_config(config)
    admin_config = config.get('admin', {})

    uvicorn.run(
        create_app(config),
        host=admin_config.get('host', '0.0.0.0'),
        port=admin_config.get('port', 8080),
    )
