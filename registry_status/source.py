"""
探针事件源

探针执行器每完成一次探针就向这里投递一个事件；
聚合引擎按到达顺序逐个消费。
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Callable, NamedTuple, Optional

from .models import ProbeSample

logger = logging.getLogger(__name__)


class SampleEvent(NamedTuple):
    """单个探针事件"""
    error: Optional[BaseException] = None
    sample: Optional[ProbeSample] = None
    # 事件源级别的错误（与单个样本无关）
    source_error: Optional[BaseException] = None


class QueueSampleSource:
    """
    基于 asyncio.Queue 的事件通道

    - publish(error, sample): 投递一次探针结果
    - report_error(err): 投递事件源级别错误
    - events(): 按到达顺序逐个取出事件
    """

    def __init__(self, maxsize: int = 0):
        self._queue: "asyncio.Queue[SampleEvent]" = asyncio.Queue(maxsize=maxsize)

    def publish(self, error: Optional[BaseException], sample: Optional[ProbeSample]):
        """投递一次探针结果"""
        self._queue.put_nowait(SampleEvent(error=error, sample=sample))

    def report_error(self, error: BaseException):
        """投递事件源级别错误"""
        self._queue.put_nowait(SampleEvent(source_error=error))

    def pending(self) -> int:
        """当前排队中的事件数"""
        return self._queue.qsize()

    def drain(self, on_source_error: Optional[Callable[[BaseException], Any]] = None) -> int:
        """
        丢弃所有排队中的探针结果

        Args:
            on_source_error: 事件源级别错误不丢弃，交给该回调

        Returns:
            丢弃的事件数（不含转交的事件源错误）
        """
        dropped = 0
        while True:
            try:
                event = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break

            try:
                if event.source_error is not None and on_source_error is not None:
                    on_source_error(event.source_error)
                else:
                    dropped += 1
            finally:
                self._queue.task_done()
        return dropped

    async def join(self):
        """等待所有已投递事件处理完毕"""
        await self._queue.join()

    async def events(self) -> AsyncIterator[SampleEvent]:
        """按到达顺序产出事件（不会结束）"""
        while True:
            event = await self._queue.get()
            try:
                yield event
            finally:
                self._queue.task_done()
