"""
이자 배치 통합 진입점

Dispatcher(크론 트리거)와 Admin API를 하나의 엔진으로 실행합니다.

사용법:
    python main.py                 # 전체 실행
    python main.py dispatcher      # Dispatcher만
    python main.py admin           # Admin API만
"""

import sys
import os

# Windows 인코딩 설정 (cp949 -> UTF-8)
if sys.platform == "win32":
    os.environ["PYTHONUTF8"] = "1"

import asyncio
import signal
import logging
from pathlib import Path

import yaml

from batch import InterestBatchEngine, create_engine
from common.logging import setup_logging_from_config
from database.registry import DatabaseRegistry

logger = logging.getLogger(__name__)

CONFIG_FILES = ("database.yaml", "batch.yaml", "dispatcher.yaml", "admin.yaml", "logging.yaml")


def load_config(config_path: Path) -> dict:
    """config/*.yaml 병합"""
    config: dict = {}
    for name in CONFIG_FILES:
        path = config_path / name
        if path.exists():
            with open(path, encoding="utf-8") as f:
                config.update(yaml.safe_load(f) or {})
    return config


async def run_dispatcher(config: dict, engine: InterestBatchEngine, stop_event: asyncio.Event):
    """Dispatcher 실행"""
    from dispatcher.main import Dispatcher
    from dispatcher.model.dispatcher import DispatcherConfig

    dispatcher_config = DispatcherConfig(**config.get("dispatcher", {}))
    dispatcher = Dispatcher(dispatcher_config, engine)

    async def wait_stop():
        await stop_event.wait()
        await dispatcher.stop()

    asyncio.create_task(wait_stop())
    await dispatcher.start()


async def run_admin(config: dict, engine: InterestBatchEngine, stop_event: asyncio.Event):
    """Admin API 실행"""
    import uvicorn
    from admin.main import create_app

    admin_config = config.get("admin", {})
    uv_config = uvicorn.Config(
        create_app(config, engine),
        host=admin_config.get("host", "0.0.0.0"),
        port=admin_config.get("port", 8080),
        log_level="info",
    )
    server = uvicorn.Server(uv_config)

    async def wait_stop():
        await stop_event.wait()
        server.should_exit = True

    asyncio.create_task(wait_stop())
    await server.serve()


async def main(modules: list[str]):
    """메인 함수"""
    config = load_config(Path(__file__).parent / "config")
    setup_logging_from_config(config)

    batch_config = config.get("batch", {})
    await DatabaseRegistry.init_from_config(config, [batch_config.get("database", "default")])

    engine = create_engine(batch_config)
    await engine.recover_interrupted()

    # 종료 이벤트
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        stop_event.set()

    # Windows는 add_signal_handler를 지원하지 않음
    if sys.platform != "win32":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, signal_handler)

    tasks = []
    if "dispatcher" in modules:
        tasks.append(asyncio.create_task(run_dispatcher(config, engine, stop_event)))
        logger.info("Dispatcher started")
    if "admin" in modules:
        tasks.append(asyncio.create_task(run_admin(config, engine, stop_event)))
        logger.info("Admin API started")

    try:
        await asyncio.gather(*tasks)
    except asyncio.CancelledError:
        logger.info("Tasks cancelled")
    finally:
        await engine.close()
        await DatabaseRegistry.close_all()
        logger.info("All modules stopped")


if __name__ == "__main__":
    args = sys.argv[1:]
    valid_modules = {"dispatcher", "admin"}

    if args:
        modules = [m for m in args if m in valid_modules]
        if not modules:
            print("Usage: python main.py [dispatcher] [admin]")
            sys.exit(1)
    else:
        modules = ["dispatcher", "admin"]

    print(f"Starting interest batch: {', '.join(modules)}")
    try:
        asyncio.run(main(modules))
    except KeyboardInterrupt:
        print("\nShutdown requested by user")
