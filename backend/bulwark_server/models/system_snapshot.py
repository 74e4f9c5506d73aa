"""
系统快照模型 (System Snapshot Model)

随心跳上报的主机运行快照，服务端原样存储，只追加，按保留期定期清理。
"""
import uuid
from datetime import datetime

from sqlalchemy import JSON, BigInteger, DateTime, Float, ForeignKey, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from bulwark_server.core.database import Base


class SystemSnapshot(Base):
    """系统快照表 (System Snapshot Table)"""
    __tablename__ = "system_snapshots"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    endpoint_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("endpoints.id", ondelete="CASCADE"), nullable=False, index=True
    )
    cpu_usage: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    memory_total: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    memory_used: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    disk_total: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    disk_used: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    processes: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    open_ports: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    installed_software: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    collected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
