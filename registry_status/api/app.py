"""
FastAPI 应用配置

配置 CORS、路由注册，并挂载聚合引擎。
"""

import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..config import get_config
from ..engine import ProbeEngine
from .routers import live, samples, series

logger = logging.getLogger(__name__)


def create_app(engine: Optional[ProbeEngine] = None) -> FastAPI:
    """
    创建 FastAPI 应用实例

    Args:
        engine: 聚合引擎，API 只读取其展示快照、向其事件源投递样本
    """
    config = get_config()

    app = FastAPI(
        title="Registry Status Aggregator",
        description="npm 镜像探针聚合数据 API",
        version="1.0.0",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.engine = engine

    app.include_router(series.router)
    app.include_router(samples.router)
    app.include_router(live.router)

    return app
