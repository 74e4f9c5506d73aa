"""
Agent 接口路由

提供 Agent 注册、心跳、检查下发和结果提交接口，所有接口都要求 X-Agent-Secret 共享密钥。
"""
from datetime import datetime, timedelta
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from bulwark_server.core.agent_auth import verify_agent_secret
from bulwark_server.core.config import Settings
from bulwark_server.core.database import get_db
from bulwark_server.core.deps import get_app_settings, get_now
from bulwark_server.schemas.agent import (
    AssignedCheck,
    CheckListResponse,
    HeartbeatRequest,
    HeartbeatResponse,
    RegisterRequest,
    RegisterResponse,
    ResultSubmission,
    SubmissionResponse,
)
from bulwark_server.services.protocol import ProtocolService

router = APIRouter(prefix="/api/agent", tags=["agent"], dependencies=[Depends(verify_agent_secret)])


def get_protocol_service(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> ProtocolService:
    return ProtocolService(db, timedelta(minutes=settings.offline_threshold_minutes))


@router.post("/register", response_model=RegisterResponse)
async def register_agent(
    body: RegisterRequest,
    service: ProtocolService = Depends(get_protocol_service),
):
    """Agent 注册接口，按 hostname 幂等：重复注册返回同一个 endpoint_id。"""
    endpoint_id = await service.register(body)
    return RegisterResponse(endpoint_id=endpoint_id)


@router.post("/heartbeat", response_model=HeartbeatResponse)
async def heartbeat(
    body: HeartbeatRequest,
    service: ProtocolService = Depends(get_protocol_service),
    now: datetime = Depends(get_now),
):
    """Agent 心跳接口，存储系统快照并更新端点在线状态。"""
    await service.heartbeat(body, now)
    return HeartbeatResponse(server_time=now)


@router.get("/checks", response_model=CheckListResponse)
async def list_checks(
    endpoint_id: UUID = Query(...),
    service: ProtocolService = Depends(get_protocol_service),
):
    """返回分配给该端点的启用检查。"""
    checks = await service.assigned_checks(endpoint_id)
    return CheckListResponse(checks=[AssignedCheck.model_validate(c) for c in checks])


@router.post("/results", response_model=SubmissionResponse)
async def submit_results(
    body: ResultSubmission,
    service: ProtocolService = Depends(get_protocol_service),
):
    """Agent 提交检查结果，只追加写入。"""
    accepted = await service.submit_results(body)
    return SubmissionResponse(accepted_count=accepted)
