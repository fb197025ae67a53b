"""
实时推送通道

把每个新计算出的数据点广播给所有订阅者（WebSocket 连接）。
不做确认和重试：订阅者队列满时直接丢弃该消息。
"""

import asyncio
import logging
from typing import Any, Dict, List

logger = logging.getLogger(__name__)


class Broadcaster:
    """进程内广播"""

    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._subscribers: List[asyncio.Queue] = []

    def subscribe(self) -> asyncio.Queue:
        """新增订阅者，返回其消息队列"""
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self._subscribers.append(queue)
        logger.debug(f"Subscriber added ({len(self._subscribers)} total)")
        return queue

    def unsubscribe(self, queue: asyncio.Queue):
        """移除订阅者"""
        if queue in self._subscribers:
            self._subscribers.remove(queue)
            logger.debug(f"Subscriber removed ({len(self._subscribers)} total)")

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def broadcast(self, message: Dict[str, Any]) -> int:
        """
        广播消息

        Returns:
            成功投递的订阅者数量
        """
        delivered = 0
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(message)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning("Subscriber queue full, dropping live message")
        return delivered
