"""
Agent 接口请求/响应模型

定义注册、心跳、检查下发和结果提交接口的数据结构。
"""
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from bulwark_server.models.check_result import ResultStatus


def _ensure_utc(value: datetime) -> datetime:
    # 不带时区的时间按 UTC 处理
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class RegisterRequest(BaseModel):
    """Agent 注册请求体，包含主机基本信息。"""
    hostname: str = Field(min_length=1, max_length=255)
    os: str = ""
    os_version: str = ""
    agent_version: str = ""
    ip_addresses: list[str] = Field(default_factory=list)


class RegisterResponse(BaseModel):
    endpoint_id: UUID
    message: str = "registered"


class SnapshotIn(BaseModel):
    """心跳携带的系统快照，内容不做解释。"""
    collected_at: datetime | None = None
    cpu_usage: float = 0.0
    memory_total: int = 0
    memory_used: int = 0
    disk_total: int = 0
    disk_used: int = 0
    processes: list[Any] = Field(default_factory=list)
    open_ports: list[Any] = Field(default_factory=list)
    installed_software: list[Any] = Field(default_factory=list)

    @field_validator("collected_at")
    @classmethod
    def normalize_collected_at(cls, value: datetime | None) -> datetime | None:
        return _ensure_utc(value) if value is not None else None


class HeartbeatRequest(BaseModel):
    endpoint_id: UUID
    snapshot: SnapshotIn = Field(default_factory=SnapshotIn)


class HeartbeatResponse(BaseModel):
    ack: bool = True
    status: str = "ok"
    server_time: datetime


class AssignedCheck(BaseModel):
    """下发给 Agent 的检查定义。"""
    id: UUID
    name: str
    check_type: str
    parameters: dict[str, Any]
    severity: str

    model_config = {"from_attributes": True}


class CheckListResponse(BaseModel):
    checks: list[AssignedCheck]


class ResultItem(BaseModel):
    check_id: UUID
    status: ResultStatus
    message: str | None = None
    collected_at: datetime

    @field_validator("collected_at")
    @classmethod
    def normalize_collected_at(cls, value: datetime) -> datetime:
        return _ensure_utc(value)


class ResultSubmission(BaseModel):
    endpoint_id: UUID
    results: list[ResultItem] = Field(default_factory=list)


class SubmissionResponse(BaseModel):
    accepted_count: int
    message: str = "accepted"
