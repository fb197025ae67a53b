"""
探针聚合引擎

两个阶段：
1. 启动（bootstrap）：并发拉取三类探针的全部历史，计算完整展示快照
2. 实时（live）：逐个消费探针事件，先重算再追加缓存、更新快照并广播
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional

from .config import EngineConfig
from .models import DAY_GROUPED_TYPES, SAMPLE_TYPES, ProbeCache, ProbeSample
from .push import Broadcaster
from .source import QueueSampleSource, SampleEvent
from .store import History, HistoryStore
from .transforms import build_transforms, day_key

logger = logging.getLogger(__name__)


class BootstrapError(Exception):
    """启动阶段拉取历史失败（致命）"""


def _log_source_error(error: BaseException):
    logger.error(f"Sample source error: {error}")


class ProbeEngine:
    """
    探针聚合引擎

    依赖全部通过构造函数注入；缓存和展示快照只由本引擎写入。
    """

    def __init__(
        self,
        store: HistoryStore,
        source: QueueSampleSource,
        broadcaster: Broadcaster,
        settings: Optional[EngineConfig] = None,
        error_sink: Optional[Callable[[BaseException], Any]] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.store = store
        self.source = source
        self.broadcaster = broadcaster
        self.settings = settings or EngineConfig()
        self.error_sink = error_sink or _log_source_error
        self.cache = ProbeCache()
        self.phase = "bootstrap"

        publish_interval = self.settings.probe_intervals["publish"]
        intervals = self.settings.interval_table
        day_ms = self.settings.day_ms

        # 完整快照与实时尾部重算分别使用各自的窗口
        self.snapshot_transforms = build_transforms(
            intervals, publish_interval, day_ms,
            window=self.settings.snapshot_window, clock=clock,
        )
        self.live_transforms = build_transforms(
            intervals, publish_interval, day_ms,
            window=self.settings.live.window, clock=clock,
        )

    # =========================================================================
    # 启动阶段
    # =========================================================================

    async def _fetch_all(self) -> Dict[str, History]:
        results = await asyncio.gather(
            *(self.store.fetch_history(sample_type) for sample_type in SAMPLE_TYPES)
        )
        return dict(zip(SAMPLE_TYPES, results))

    async def bootstrap(self):
        """
        拉取历史并安装展示快照

        Raises:
            BootstrapError: 任一类型拉取失败或超时
        """
        timeout = self.settings.bootstrap_timeout
        logger.info(f"Bootstrapping probe history (timeout={timeout}s)")

        try:
            cache = await asyncio.wait_for(self._fetch_all(), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise BootstrapError(f"Fetching probe history timed out after {timeout}s") from e
        except Exception as e:
            raise BootstrapError(f"Fetching probe history failed: {e}") from e

        for sample_type, history in cache.items():
            transform = self.snapshot_transforms[sample_type]

            for registry, samples in history.items():
                # 缓存保留原始顺序，转换只作用于副本
                try:
                    points = transform(list(samples))
                except Exception as e:
                    raise BootstrapError(f"Invalid {sample_type} history for {registry}: {e}") from e

                await self.cache.load(sample_type, registry, samples)
                await self.cache.set_series(sample_type, registry, points)

            logger.info(f"Installed {sample_type} snapshot for {len(history)} registries")

    # =========================================================================
    # 实时阶段
    # =========================================================================

    async def handle_event(self, event: SampleEvent) -> Optional[Dict[str, Any]]:
        """
        处理单个事件

        Returns:
            广播出去的消息；事件被丢弃时返回 None
        """
        if event.source_error is not None:
            self.error_sink(event.source_error)
            return None

        if event.error is not None or event.sample is None:
            logger.debug(f"Discarding failed probe event: {event.error}")
            return None

        return await self.process_sample(event.sample)

    async def process_sample(self, sample: ProbeSample) -> Dict[str, Any]:
        """
        计算最新数据点、追加样本、更新快照并广播

        先计算后追加：计算失败的样本不会进入缓存。
        - ping: 对缓存尾部（tail_size 个）重算滑动平均，追加最新点
        - delta / publish: 对样本所在自然日的全部缓存样本重算，整天替换
        """
        transform = self.live_transforms[sample.type]

        if sample.type in DAY_GROUPED_TYPES:
            day = day_key(sample.start)
            window = [
                cached for cached in await self.cache.get_since(sample.type, sample.registry, day)
                if day_key(cached.start) == day
            ]
        else:
            window = await self.cache.get_tail(
                sample.type, sample.registry, self.settings.live.tail_size - 1
            )

        window.append(sample)
        points = transform(window)
        point = points[-1]

        await self.cache.append(sample)
        if sample.type in DAY_GROUPED_TYPES:
            await self.cache.replace_day(sample.type, sample.registry, day, points)
        else:
            await self.cache.append_point(sample.type, sample.registry, point)

        message = sample.model_dump()
        message["point"] = point
        delivered = self.broadcaster.broadcast(message)

        logger.debug(
            f"Processed {sample.type} sample for {sample.registry} "
            f"(t={point['t']}, delivered={delivered})"
        )
        return message

    async def run(self):
        """
        运行引擎：启动后进入实时阶段，直到任务被取消

        Raises:
            BootstrapError: 启动失败
        """
        try:
            await self.bootstrap()
        except BootstrapError:
            self.phase = "stopped"
            raise

        if not self.settings.live.buffer_during_bootstrap:
            dropped = self.source.drain(on_source_error=self.error_sink)
            if dropped:
                logger.warning(f"Dropped {dropped} probe events received during bootstrap")
        elif self.source.pending():
            logger.info(f"Replaying {self.source.pending()} probe events received during bootstrap")

        self.phase = "live"
        logger.info("Probe engine is live")

        try:
            async for event in self.source.events():
                try:
                    await self.handle_event(event)
                except Exception as e:
                    logger.error(f"Failed to process probe event: {e}", exc_info=True)
        except asyncio.CancelledError:
            logger.info("Probe engine cancelled")
            raise
        finally:
            self.phase = "stopped"
