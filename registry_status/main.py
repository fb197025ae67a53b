"""
主程序入口

启动两个并发任务：
1. 探针聚合引擎（启动拉取 + 实时处理）
2. REST / WebSocket API 服务
"""

import asyncio
import logging
import sys
from pathlib import Path

import uvicorn

from .config import get_config
from .engine import BootstrapError, ProbeEngine
from .push import Broadcaster
from .source import QueueSampleSource
from .store import CouchStore


def setup_logging():
    """配置日志"""
    config = get_config()

    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    level = getattr(logging, config.logging.level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format=log_format,
        handlers=[logging.StreamHandler(sys.stdout)]
    )

    # 如果配置了文件日志
    if config.logging.file:
        log_path = Path(config.logging.file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(str(log_path), encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(log_format))
        logging.getLogger().addHandler(file_handler)

    # 降低第三方库日志级别
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def build_engine() -> ProbeEngine:
    """按配置组装引擎及其依赖"""
    config = get_config()

    return ProbeEngine(
        store=CouchStore(config.store),
        source=QueueSampleSource(),
        broadcaster=Broadcaster(queue_size=config.engine.live.subscriber_queue_size),
        settings=config.engine,
    )


async def run_api_server(engine: ProbeEngine):
    """运行 API 服务器"""
    from .api.app import create_app

    config = get_config()
    app = create_app(engine)

    server_config = uvicorn.Config(
        app=app,
        host=config.api.host,
        port=config.api.port,
        log_level="info",
        access_log=False
    )
    server = uvicorn.Server(server_config)
    await server.serve()


async def main():
    """主函数：启动所有任务"""
    logger = logging.getLogger(__name__)

    setup_logging()
    logger.info("=" * 60)
    logger.info("Registry Status Aggregator v1.0.0")
    logger.info("=" * 60)

    config = get_config()
    logger.info(f"Config loaded: API={config.api.host}:{config.api.port}")
    logger.info(f"Store: {config.store.url}/{config.store.database}")

    engine = build_engine()

    logger.info("Starting concurrent tasks...")

    try:
        await asyncio.gather(
            engine.run(),
            run_api_server(engine)
        )
    except asyncio.CancelledError:
        logger.info("Tasks cancelled, shutting down...")
    except BootstrapError as e:
        logger.error(f"Startup aborted: {e}", exc_info=True)
        raise


def cli():
    """命令行入口"""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nShutdown requested, exiting...")
        sys.exit(0)
    except BootstrapError:
        sys.exit(1)


if __name__ == "__main__":
    cli()
