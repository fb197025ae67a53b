"""
配置加载模块

从 config.yaml 加载配置，支持 Pydantic 验证和环境变量覆盖。
"""

import os
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import yaml
from pydantic import BaseModel, Field, field_validator


# 一天的毫秒数（延迟换算为“天”的基准）
DAY_MS = 86_400_000


class IntervalConfig(BaseModel):
    """延迟区间（标签 + 上限阈值，毫秒）"""
    label: str
    threshold: float


def _default_intervals() -> List[IntervalConfig]:
    return [
        IntervalConfig(label="minute", threshold=60_000),
        IntervalConfig(label="quarter", threshold=900_000),
        IntervalConfig(label="hour", threshold=3_600_000),
        IntervalConfig(label="day", threshold=DAY_MS),
        IntervalConfig(label="week", threshold=7 * DAY_MS),
        IntervalConfig(label="month", threshold=30 * DAY_MS),
    ]


class StoreConfig(BaseModel):
    """CouchDB 历史数据源配置"""
    url: str = "http://localhost:5984"
    database: str = "npm-probe"
    design: str = "results"
    list_name: str = "byRegistry"
    username: Optional[str] = None
    password: Optional[str] = None
    timeout: float = 10.0


class LiveConfig(BaseModel):
    """实时处理配置"""
    window: int = Field(default=3, ge=1)
    tail_size: int = Field(default=10, ge=1)
    buffer_during_bootstrap: bool = True
    subscriber_queue_size: int = Field(default=100, ge=1)


class EngineConfig(BaseModel):
    """聚合引擎配置"""
    intervals: List[IntervalConfig] = Field(default_factory=_default_intervals)
    # 各探针的执行周期（毫秒）
    # 只有 publish 参与计算（当天预期发布次数）；ping / delta 仅通过 /api/health 对外展示
    probe_intervals: Dict[str, int] = Field(default_factory=lambda: {
        "ping": 60_000,
        "delta": 300_000,
        "publish": 180_000,
    })
    snapshot_window: int = Field(default=3, ge=1)
    day_ms: int = Field(default=DAY_MS, gt=0)
    bootstrap_timeout: float = Field(default=30.0, gt=0)
    live: LiveConfig = Field(default_factory=LiveConfig)

    @field_validator("intervals")
    @classmethod
    def _check_intervals(cls, value: List[IntervalConfig]) -> List[IntervalConfig]:
        if not value:
            raise ValueError("at least one interval is required")
        thresholds = [item.threshold for item in value]
        if any(b <= a for a, b in zip(thresholds, thresholds[1:])):
            raise ValueError("interval thresholds must be strictly ascending")
        return value

    @field_validator("probe_intervals")
    @classmethod
    def _check_probe_intervals(cls, value: Dict[str, int]) -> Dict[str, int]:
        if value.get("publish", 0) <= 0:
            raise ValueError("probe_intervals.publish must be a positive number of milliseconds")
        return value

    @property
    def interval_table(self) -> List[Tuple[str, float]]:
        """有序的 (label, threshold) 列表"""
        return [(item.label, item.threshold) for item in self.intervals]


class APIConfig(BaseModel):
    """API 服务配置"""
    host: str = "0.0.0.0"
    port: int = 8080
    cors_origins: List[str] = ["http://localhost:8080", "http://127.0.0.1:8080"]
    admin_token: str = "CHANGE_ME_IN_PRODUCTION"


class LoggingConfig(BaseModel):
    """日志配置"""
    level: str = "INFO"
    file: Optional[str] = None


class AppConfig(BaseModel):
    """应用配置（完整配置）"""
    store: StoreConfig = Field(default_factory=StoreConfig)
    engine: EngineConfig = Field(default_factory=EngineConfig)
    api: APIConfig = Field(default_factory=APIConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(config_path: Optional[str] = None) -> AppConfig:
    """
    加载配置文件

    优先级：
    1. 参数指定的路径
    2. 环境变量 REGISTRY_STATUS_CONFIG
    3. 默认路径 config.yaml
    """
    if config_path is None:
        config_path = os.environ.get("REGISTRY_STATUS_CONFIG", "config.yaml")

    config_file = Path(config_path)

    if config_file.exists():
        with open(config_file, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
            if raw_config:
                # 日志文件相对路径以配置文件所在目录为基准
                log_file = (raw_config.get("logging") or {}).get("file")
                if log_file and not Path(log_file).is_absolute():
                    raw_config["logging"]["file"] = str((config_file.resolve().parent / log_file).resolve())
                return AppConfig(**raw_config)

    # 配置文件不存在时使用默认配置
    return AppConfig()


# 全局配置实例（延迟加载）
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """获取全局配置实例（单例模式）"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config():
    """重置配置（主要用于测试）"""
    global _config
    _config = None
