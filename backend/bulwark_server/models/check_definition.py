"""
检查定义模型 (Check Definition Model)

由管理员集中定义的合规检查。启用的定义全部下发给每个端点，禁用的永不下发。
"""
import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from bulwark_server.core.database import Base

CHECK_TYPES = (
    "file_exists",
    "file_content",
    "registry_key",
    "config_setting",
    "process_running",
    "port_open",
    "command_output",
)
SEVERITIES = ("info", "low", "medium", "high", "critical")


class CheckDefinition(Base):
    """检查定义表 (Check Definition Table)"""
    __tablename__ = "check_definitions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    check_type: Mapped[str] = mapped_column(String(50), nullable=False)
    parameters: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    severity: Mapped[str] = mapped_column(String(20), nullable=False, default="medium")
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
