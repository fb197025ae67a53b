"""
展示快照 API

提供各探针类型、各镜像的聚合时间序列查询。
"""

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, status

from ...engine import ProbeEngine
from ...models import SAMPLE_TYPES, HealthResponse, SeriesResponse
from ..dependencies import get_engine

router = APIRouter(prefix="/api", tags=["series"])


def _check_type(sample_type: str):
    if sample_type not in SAMPLE_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid type. Must be one of: {list(SAMPLE_TYPES)}"
        )


@router.get("/health", response_model=HealthResponse)
async def health(engine: ProbeEngine = Depends(get_engine)):
    """引擎状态与缓存规模"""
    snapshot = await engine.cache.get_snapshot()

    return HealthResponse(
        status="ok" if engine.phase != "stopped" else "degraded",
        phase=engine.phase,
        cached_samples=await engine.cache.get_counts(),
        registries={
            sample_type: sorted(registries)
            for sample_type, registries in snapshot.items()
        },
        probe_intervals=dict(engine.settings.probe_intervals),
    )


@router.get("/series")
async def get_snapshot(engine: ProbeEngine = Depends(get_engine)) -> Dict[str, Dict[str, List[Dict[str, Any]]]]:
    """完整展示快照"""
    return await engine.cache.get_snapshot()


@router.get("/series/{sample_type}")
async def get_type_series(
    sample_type: str,
    engine: ProbeEngine = Depends(get_engine)
) -> Dict[str, List[Dict[str, Any]]]:
    """某类探针所有镜像的序列"""
    _check_type(sample_type)
    snapshot = await engine.cache.get_snapshot()
    return snapshot.get(sample_type, {})


@router.get("/series/{sample_type}/{registry}", response_model=SeriesResponse)
async def get_registry_series(
    sample_type: str,
    registry: str,
    engine: ProbeEngine = Depends(get_engine)
):
    """单个镜像的序列"""
    _check_type(sample_type)

    points = await engine.cache.get_series(sample_type, registry)
    if points is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No {sample_type} series for registry {registry}"
        )

    return SeriesResponse(type=sample_type, registry=registry, data=points)
