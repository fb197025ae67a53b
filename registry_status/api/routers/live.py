"""
实时推送

WebSocket 连接订阅引擎广播，逐条下发新计算出的数据点。
"""

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)

router = APIRouter(tags=["live"])


@router.websocket("/api/live")
async def live(websocket: WebSocket):
    engine = getattr(websocket.app.state, "engine", None)
    if engine is None:
        await websocket.close(code=1011)
        return

    await websocket.accept()
    queue = engine.broadcaster.subscribe()

    try:
        while True:
            message = await queue.get()
            await websocket.send_json(message)
    except WebSocketDisconnect:
        logger.debug("Live client disconnected")
    finally:
        engine.broadcaster.unsubscribe(queue)
