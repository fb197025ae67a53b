"""
历史数据源

启动时按探针类型拉取全部历史结果，按镜像（registry）分组。
"""

import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional, Protocol

import httpx
from pydantic import ValidationError

from .config import StoreConfig
from .models import ProbeSample

logger = logging.getLogger(__name__)

History = Dict[str, List[ProbeSample]]


class StoreError(Exception):
    """历史数据拉取失败"""


class HistoryStore(Protocol):
    """历史数据查询接口"""

    async def fetch_history(self, sample_type: str) -> History:
        ...


def parse_history(payload: Any, sample_type: str) -> History:
    """
    解析 CouchDB list / view 返回的数据

    支持两种格式：
    - {registry: [sample, ...]}（list 函数输出）
    - {"rows": [{"key": registry, "value": sample}, ...]}（原始 view 输出）
    """
    history: Dict[str, List[ProbeSample]] = defaultdict(list)

    try:
        if isinstance(payload, dict) and isinstance(payload.get("rows"), list):
            for row in payload["rows"]:
                value = dict(row["value"])
                registry = value.get("registry") or row["key"]
                value.setdefault("registry", registry)
                value.setdefault("type", sample_type)
                history[registry].append(ProbeSample.model_validate(value))
        elif isinstance(payload, dict):
            for registry, samples in payload.items():
                for value in samples:
                    value = dict(value)
                    value.setdefault("registry", registry)
                    if "type" not in value and "name" not in value:
                        value["type"] = sample_type
                    history[registry].append(ProbeSample.model_validate(value))
        else:
            raise StoreError(f"Unexpected {sample_type} history payload: {type(payload).__name__}")
    except (KeyError, TypeError, ValidationError) as e:
        raise StoreError(f"Malformed {sample_type} history: {e}") from e

    return dict(history)


class CouchStore:
    """基于 CouchDB list 函数的历史数据源"""

    def __init__(self, config: StoreConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Args:
            config: 数据源配置
            transport: 自定义 httpx transport（测试用）
        """
        self.config = config
        self._transport = transport

    def url_for(self, sample_type: str) -> str:
        base = self.config.url.rstrip("/")
        return (
            f"{base}/{self.config.database}/_design/{self.config.design}"
            f"/_list/{self.config.list_name}/{sample_type}"
        )

    async def fetch_history(self, sample_type: str) -> History:
        """
        拉取某类探针的全部历史

        Raises:
            StoreError: 请求或解析失败时抛出
        """
        url = self.url_for(sample_type)
        auth = None
        if self.config.username:
            auth = (self.config.username, self.config.password or "")

        try:
            async with httpx.AsyncClient(
                timeout=self.config.timeout,
                auth=auth,
                transport=self._transport,
            ) as client:
                response = await client.get(url)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPError as e:
            raise StoreError(f"Failed to fetch {sample_type} history from {url}: {e}") from e
        except ValueError as e:
            raise StoreError(f"Invalid JSON in {sample_type} history: {e}") from e

        history = parse_history(payload, sample_type)
        logger.info(
            f"Fetched {sample_type} history: "
            f"{sum(len(v) for v in history.values())} samples across {len(history)} registries"
        )
        return history
