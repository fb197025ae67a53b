"""
样本写入 API

探针执行器通过此接口投递探针结果，结果进入引擎的事件队列。
"""

from fastapi import APIRouter, Depends, status

from ...engine import ProbeEngine
from ...models import ProbeSample, SampleAccepted
from ..dependencies import get_engine, verify_admin_token

router = APIRouter(prefix="/api/samples", tags=["samples"])


@router.post(
    "",
    response_model=SampleAccepted,
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(verify_admin_token)]
)
async def submit_sample(sample: ProbeSample, engine: ProbeEngine = Depends(get_engine)):
    """投递一次探针结果（异步处理）"""
    engine.source.publish(None, sample)
    return SampleAccepted(type=sample.type, registry=sample.registry)
