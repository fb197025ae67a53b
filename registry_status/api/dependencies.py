"""
依赖注入模块

提供 FastAPI 依赖项。
"""

from typing import Optional

from fastapi import Header, HTTPException, Request, status

from ..config import get_config
from ..engine import ProbeEngine


async def get_engine(request: Request) -> ProbeEngine:
    """获取聚合引擎实例"""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Probe engine is not attached"
        )
    return engine


async def verify_admin_token(x_admin_token: Optional[str] = Header(None)):
    """
    验证管理员 Token

    用于保护样本写入接口。
    """
    config = get_config()
    expected_token = config.api.admin_token

    # 如果配置为默认值，跳过验证（开发环境）
    if expected_token == "CHANGE_ME_IN_PRODUCTION":
        return

    if x_admin_token != expected_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin token"
        )
