"""
Registry Status Aggregator - npm 镜像健康探针聚合服务

负责：
- 启动时拉取全部历史探针结果并计算展示快照
- 实时消费探针事件，增量更新缓存与快照
- 将最新数据点推送给前端
- 提供 REST / WebSocket API
"""

__version__ = "1.0.0"
