"""
端点模型 (Endpoint Model)

每个运行 Agent 的主机对应一行，hostname 唯一。注册时按 hostname 原子 upsert，
在线状态（status / last_seen）只由心跳处理和离线扫描修改。
"""
import enum
import uuid
from datetime import datetime

from sqlalchemy import JSON, DateTime, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from bulwark_server.core.database import Base


class EndpointStatus(str, enum.Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    UNKNOWN = "unknown"  # 已注册但尚未收到心跳


class Endpoint(Base):
    """端点表 (Endpoint Table)"""
    __tablename__ = "endpoints"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    hostname: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    os: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    os_version: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    agent_version: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    ip_addresses: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    last_seen: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)  # 最后心跳时间
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=EndpointStatus.UNKNOWN.value)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
