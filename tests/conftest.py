"""
测试公共夹具
"""

import asyncio
from datetime import datetime
from typing import Dict, List, Optional

import pytest

from registry_status.config import EngineConfig, IntervalConfig, reset_config
from registry_status.models import ProbeSample


DAY_MS = 86_400_000
HOUR_MS = 3_600_000


def local_ms(*args) -> int:
    """本地时间 -> 毫秒时间戳"""
    return int(datetime(*args).timestamp() * 1000)


def make_sample(sample_type: str, start: int, registry: str = "npmjs", **results) -> ProbeSample:
    return ProbeSample(type=sample_type, start=start, registry=registry, results=results)


class FakeStore:
    """内存历史数据源"""

    def __init__(self, histories: Optional[Dict[str, Dict[str, List[ProbeSample]]]] = None,
                 fail_on: Optional[str] = None, delay: float = 0):
        self.histories = histories or {}
        self.fail_on = fail_on
        self.delay = delay
        self.calls: List[str] = []

    async def fetch_history(self, sample_type: str):
        self.calls.append(sample_type)
        if self.delay:
            await asyncio.sleep(self.delay)
        if sample_type == self.fail_on:
            raise RuntimeError(f"{sample_type} view unavailable")
        return self.histories.get(sample_type, {})


@pytest.fixture(autouse=True)
def _isolated_config(tmp_path, monkeypatch):
    """每个测试使用默认配置"""
    monkeypatch.setenv("REGISTRY_STATUS_CONFIG", str(tmp_path / "missing.yaml"))
    reset_config()
    yield
    reset_config()


@pytest.fixture
def intervals():
    return [("minute", 60_000), ("hour", HOUR_MS), ("day", DAY_MS)]


@pytest.fixture
def engine_settings():
    return EngineConfig(
        intervals=[
            IntervalConfig(label="minute", threshold=60_000),
            IntervalConfig(label="hour", threshold=HOUR_MS),
            IntervalConfig(label="day", threshold=DAY_MS),
        ],
        probe_intervals={"ping": 60_000, "delta": 300_000, "publish": HOUR_MS},
        snapshot_window=3,
        bootstrap_timeout=1.0,
    )


@pytest.fixture
def noon():
    """固定时钟：2026-01-20 12:00（本地时间）"""
    return lambda: local_ms(2026, 1, 20, 12, 0)
