"""
数据模型定义

包括：
- 探针样本模型
- Pydantic 响应模型
- 内存缓存（探针缓存 + 展示快照）
"""

import asyncio
import copy
from collections import defaultdict
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


SampleType = Literal["ping", "delta", "publish"]

# 固定的探针类型顺序
SAMPLE_TYPES: Tuple[str, ...] = ("ping", "delta", "publish")

# 按天分组的探针类型
DAY_GROUPED_TYPES: Tuple[str, ...] = ("delta", "publish")

# 时间戳上限：9999-01-01（毫秒），保证本地时区换算不溢出
MAX_START_MS = 253_370_764_800_000


# =============================================================================
# 探针样本
# =============================================================================

class ProbeSample(BaseModel):
    """单次探针执行结果（产生后不可变）"""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    start: int = Field(ge=0, le=MAX_START_MS)
    # 历史数据里类型字段名为 name
    type: SampleType = Field(validation_alias=AliasChoices("type", "name"))
    registry: str
    results: Dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# Pydantic 响应模型（用于 API）
# =============================================================================

class AggregatePointModel(BaseModel):
    """聚合数据点"""
    t: int
    values: Dict[str, Any] = Field(default_factory=dict)


class SeriesResponse(BaseModel):
    """单个 (type, registry) 的时间序列"""
    type: str
    registry: str
    data: List[AggregatePointModel] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """健康检查响应"""
    status: str
    phase: str
    cached_samples: Dict[str, int] = Field(default_factory=dict)
    registries: Dict[str, List[str]] = Field(default_factory=dict)
    # 各探针的执行周期（毫秒），供前端展示
    probe_intervals: Dict[str, int] = Field(default_factory=dict)


class SampleAccepted(BaseModel):
    """样本入队响应"""
    accepted: bool = True
    type: str
    registry: str


# =============================================================================
# 内存缓存
# =============================================================================

class ProbeCache:
    """
    探针缓存与展示快照

    管理：
    - samples: 每个 (type, registry) 的原始样本，只追加，按时间顺序
    - snapshot: 展示快照 {type: {registry: [point, ...]}}，供 API / 前端读取

    只允许引擎任务写入；读取方拿到的都是副本。
    """

    def __init__(self):
        # 原始样本：{(type, registry): [ProbeSample, ...]}
        self._samples: Dict[Tuple[str, str], List[ProbeSample]] = defaultdict(list)

        # 展示快照：{type: {registry: [point, ...]}}
        self._snapshot: Dict[str, Dict[str, List[Dict[str, Any]]]] = {
            sample_type: {} for sample_type in SAMPLE_TYPES
        }

        self._lock = asyncio.Lock()

    async def load(self, sample_type: str, registry: str, samples: List[ProbeSample]):
        """写入一段完整历史（启动时使用）"""
        async with self._lock:
            self._samples[(sample_type, registry)] = list(samples)

    async def get_tail(self, sample_type: str, registry: str, size: int) -> List[ProbeSample]:
        """获取最后 size 个样本（副本）"""
        async with self._lock:
            if size <= 0:
                return []
            return list(self._samples.get((sample_type, registry), [])[-size:])

    async def get_since(self, sample_type: str, registry: str, since: int) -> List[ProbeSample]:
        """
        获取缓存尾部 start >= since 的连续样本（副本）

        缓存按时间顺序追加，遇到第一个更早的样本即停止。
        """
        async with self._lock:
            cached = self._samples.get((sample_type, registry), [])
            index = len(cached)
            while index > 0 and cached[index - 1].start >= since:
                index -= 1
            return list(cached[index:])

    async def append(self, sample: ProbeSample):
        """追加样本"""
        async with self._lock:
            self._samples[(sample.type, sample.registry)].append(sample)

    async def get_samples(self, sample_type: str, registry: str) -> List[ProbeSample]:
        """获取某个 (type, registry) 的样本副本"""
        async with self._lock:
            return list(self._samples.get((sample_type, registry), []))

    async def set_series(self, sample_type: str, registry: str, points: List[Dict[str, Any]]):
        """整体替换某个序列"""
        async with self._lock:
            self._snapshot.setdefault(sample_type, {})[registry] = points

    async def append_point(self, sample_type: str, registry: str, point: Dict[str, Any]):
        """追加数据点（滑动平均）"""
        async with self._lock:
            self._snapshot.setdefault(sample_type, {}).setdefault(registry, []).append(point)

    async def replace_day(self, sample_type: str, registry: str, day: int, points: List[Dict[str, Any]]):
        """
        用重算结果替换某一天的全部数据点

        该天原有数据点所在位置保持不变；该天不存在时追加到末尾。
        """
        async with self._lock:
            series = self._snapshot.setdefault(sample_type, {}).setdefault(registry, [])
            positions = [i for i, existing in enumerate(series) if existing["t"] == day]
            position = positions[0] if positions else len(series)

            series[:] = [existing for existing in series if existing["t"] != day]
            series[position:position] = points

    async def get_series(self, sample_type: str, registry: str) -> Optional[List[Dict[str, Any]]]:
        """获取单个序列副本，不存在返回 None"""
        async with self._lock:
            series = self._snapshot.get(sample_type, {}).get(registry)
            return copy.deepcopy(series) if series is not None else None

    async def get_snapshot(self) -> Dict[str, Dict[str, List[Dict[str, Any]]]]:
        """获取完整展示快照副本"""
        async with self._lock:
            return copy.deepcopy(self._snapshot)

    async def get_counts(self) -> Dict[str, int]:
        """每种类型缓存的样本数"""
        async with self._lock:
            counts = {sample_type: 0 for sample_type in SAMPLE_TYPES}
            for (sample_type, _), samples in self._samples.items():
                counts[sample_type] = counts.get(sample_type, 0) + len(samples)
            return counts
