"""
Agent 与服务端交互的 Pydantic 数据模型。

与服务端 bulwark_server.schemas.agent 中的请求/响应结构一一对应。
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from bulwark_agent.checks.params import CheckStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RegisterRequest(BaseModel):
    hostname: str
    os: str
    os_version: str
    agent_version: str
    ip_addresses: List[str] = Field(default_factory=list)


class RegisterResponse(BaseModel):
    endpoint_id: UUID
    message: str = ""


class ProcessInfo(BaseModel):
    pid: int
    name: str
    cpu_usage: float = 0.0
    memory_bytes: int = 0


class SoftwareInfo(BaseModel):
    name: str
    version: Optional[str] = None
    publisher: Optional[str] = None


class SnapshotPayload(BaseModel):
    """心跳携带的系统快照，服务端原样存储。"""
    collected_at: datetime = Field(default_factory=_utcnow)
    cpu_usage: float = 0.0
    memory_total: int = 0
    memory_used: int = 0
    disk_total: int = 0
    disk_used: int = 0
    processes: List[ProcessInfo] = Field(default_factory=list)
    open_ports: List[int] = Field(default_factory=list)
    installed_software: List[SoftwareInfo] = Field(default_factory=list)


class HeartbeatResponse(BaseModel):
    ack: bool = True
    status: str = "ok"
    server_time: Optional[datetime] = None


class AssignedCheck(BaseModel):
    """服务端下发的检查定义。check_type 保持字符串，未知类型在执行时报 error。"""
    id: UUID
    name: str
    check_type: str
    parameters: Dict[str, Any] = Field(default_factory=dict)
    severity: str = "medium"


class CheckListResponse(BaseModel):
    checks: List[AssignedCheck] = Field(default_factory=list)


class CheckResultItem(BaseModel):
    check_id: UUID
    status: CheckStatus
    message: Optional[str] = None
    collected_at: datetime = Field(default_factory=_utcnow)


class SubmissionResponse(BaseModel):
    accepted_count: int
    message: str = ""
