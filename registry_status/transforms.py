"""
探针数据转换

把原始探针样本序列转换为展示用的聚合数据点：
- ping: 滑动平均
- delta: 按天分组的延迟区间直方图
- publish: 按天分组的发布成功 / 失败百分比

所有函数都是纯函数，不修改输入样本。
"""

import math
import time
from datetime import datetime
from numbers import Number
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .models import ProbeSample

Point = Dict[str, Any]
Transform = Callable[[Sequence[ProbeSample]], List[Point]]
Accumulator = Callable[[Any, ProbeSample], Any]


def _is_number(value: Any) -> bool:
    """数值判断（排除 bool 与 NaN）"""
    if isinstance(value, bool) or not isinstance(value, Number):
        return False
    return not (isinstance(value, float) and math.isnan(value))


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def now_ms() -> int:
    """当前时间（毫秒）"""
    return int(time.time() * 1000)


# =============================================================================
# 基础工具
# =============================================================================

def classify_interval(intervals: Sequence[Tuple[str, float]], lag: float) -> int:
    """
    延迟分桶

    Args:
        intervals: 升序的 (label, threshold) 列表
        lag: 延迟（毫秒）

    Returns:
        第一个 threshold >= lag 的下标；都不满足时返回最后一个（兜底区间）
    """
    if not intervals:
        raise ValueError("intervals must not be empty")

    for index, (_, threshold) in enumerate(intervals):
        if lag <= threshold:
            return index

    return len(intervals) - 1


def day_key(start: int) -> int:
    """样本时间戳所在自然日（本地时区零点）的毫秒时间戳"""
    moment = datetime.fromtimestamp(start / 1000)
    midnight = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    return int(midnight.timestamp() * 1000)


# =============================================================================
# 滑动平均
# =============================================================================

def moving_average(n: int = 5) -> Transform:
    """
    滑动平均

    第 i 个点取 i 之前 n 个样本（下标 i-n .. i-1）的均值，
    小于 0 的下标按 0 处理，窗口不缩小。

    Args:
        n: 窗口大小，默认 5

    Returns:
        samples -> points 的转换函数，输出点数与输入相同
    """
    if n < 1:
        raise ValueError("window size must be at least 1")

    def execute(samples: Sequence[ProbeSample]) -> List[Point]:
        points = []

        for i, probe in enumerate(samples):
            window = [samples[k if k > 0 else 0] for k in range(i - n, i)]
            values = {}

            for metric, value in probe.results.items():
                if not _is_number(value):
                    continue

                metrics = [
                    item.results.get(metric) for item in window
                    if _is_number(item.results.get(metric))
                ]
                if metrics:
                    values[metric] = sum(metrics) / len(metrics)

            points.append({"t": probe.start, "values": values})

        return points

    return execute


# =============================================================================
# 按天分组
# =============================================================================

def group_per_day(accumulate: Accumulator, factory: Callable[[], Any]) -> Transform:
    """
    按天分组并累计

    Args:
        accumulate: (day_state, probe) -> day_state
        factory: 生成一天的初始状态（每天一份新的）

    Returns:
        samples -> points 的转换函数，按 天 -> 单元 展开
    """

    def execute(samples: Sequence[ProbeSample]) -> List[Point]:
        days: Dict[int, Any] = {}

        for probe in samples:
            key = day_key(probe.start)
            if key not in days:
                days[key] = factory()
            days[key] = accumulate(days[key], probe)

        points = []
        for key, state in days.items():
            units = state if isinstance(state, list) else [state]
            points.extend({"t": key, "values": unit} for unit in units)

        return points

    return execute


def interval_buckets(intervals: Sequence[Tuple[str, float]]) -> List[Dict[str, Any]]:
    """延迟区间的空白日状态"""
    return [
        {"type": label, "days": 0, "n": 0, "modules": []}
        for label, _ in intervals
    ]


def publish_buckets() -> List[Dict[str, Any]]:
    """发布成功率的空白日状态，下标即发布状态（0 失败 / 1 成功）"""
    return [
        {"type": "failure", "percentage": 0, "total": 0, "n": 0, "lower": 0},
        {"type": "success", "percentage": 0, "total": 0, "n": 0, "lower": 0},
    ]


# =============================================================================
# 累计函数
# =============================================================================

def time_unit(
    memo: List[Dict[str, Any]],
    probe: ProbeSample,
    intervals: Sequence[Tuple[str, float]],
    day_ms: int,
) -> List[Dict[str, Any]]:
    """
    延迟区间累计

    每个带 lag 的样本只落入一个区间：累加天数、计数，并记录受影响的模块。
    """
    lag = probe.results.get("lag")
    mean = lag.get("mean") if isinstance(lag, dict) else None
    if not _is_number(mean):
        return memo

    bucket = memo[classify_interval(intervals, mean)]
    bucket["days"] += mean / day_ms
    bucket["n"] += 1

    modules = probe.results.get("modules")
    if isinstance(modules, (list, tuple)):
        for module in modules:
            if module not in bucket["modules"]:
                bucket["modules"].append(module)

    return memo


def published_state(value: Any) -> int:
    """发布结果转换为 0（失败 / 未完成）或 1（成功）"""
    if isinstance(value, str):
        return 1 if value.strip().lower() in ("1", "true") else 0
    if _is_number(value) or isinstance(value, bool):
        return 1 if value else 0
    return 0


def percentage(
    memo: List[Dict[str, Any]],
    probe: ProbeSample,
    publish_interval: int,
    day_ms: int,
    clock: Callable[[], int] = now_ms,
) -> List[Dict[str, Any]]:
    """
    每日发布完成百分比

    total 为当天预期的探针次数（当天已过时间 / 发布探针周期），
    失败和成功两个槽位共用同一个 total。
    """
    today = day_key(clock())
    diff = probe.start - today if probe.start > today else day_ms
    done = diff // publish_interval
    state = published_state(probe.results.get("published"))

    # 两个槽位的 total 必须保持一致
    if done > memo[0]["total"] or done > memo[1]["total"]:
        memo[0]["total"] = memo[1]["total"] = done

    slot = memo[state]
    slot["n"] += 1
    if slot["total"] > 0:
        slot["percentage"] = min(100, _round_half_up(slot["n"] / slot["total"] * 100))
    else:
        slot["percentage"] = 100

    # 失败槽位记录成功率，作为对比基线
    memo[0]["lower"] = memo[1]["percentage"]
    return memo


# =============================================================================
# 转换表
# =============================================================================

def make_time_unit(intervals: Sequence[Tuple[str, float]], day_ms: int) -> Accumulator:
    """绑定区间配置的 time_unit"""
    intervals = list(intervals)

    def accumulate(memo, probe):
        return time_unit(memo, probe, intervals, day_ms)

    return accumulate


def make_percentage(
    publish_interval: int,
    day_ms: int,
    clock: Optional[Callable[[], int]] = None,
) -> Accumulator:
    """绑定发布周期与时钟的 percentage"""
    clock = clock or now_ms

    def accumulate(memo, probe):
        return percentage(memo, probe, publish_interval, day_ms, clock)

    return accumulate


def build_transforms(
    intervals: Sequence[Tuple[str, float]],
    publish_interval: int,
    day_ms: int,
    window: int = 5,
    clock: Optional[Callable[[], int]] = None,
) -> Dict[str, Transform]:
    """
    构建各探针类型对应的转换函数

    Returns:
        {"ping": ..., "delta": ..., "publish": ...}
    """
    intervals = list(intervals)

    return {
        "ping": moving_average(window),
        "delta": group_per_day(
            make_time_unit(intervals, day_ms),
            lambda: interval_buckets(intervals),
        ),
        "publish": group_per_day(
            make_percentage(publish_interval, day_ms, clock),
            publish_buckets,
        ),
    }
