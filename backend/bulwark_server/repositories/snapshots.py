"""系统快照仓储：追加写入与过期清理。"""
import uuid
from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from bulwark_server.models.system_snapshot import SystemSnapshot
from bulwark_server.schemas.agent import SnapshotIn


class SnapshotRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def append(self, endpoint_id: uuid.UUID, snapshot: SnapshotIn, received_at: datetime) -> SystemSnapshot:
        row = SystemSnapshot(
            endpoint_id=endpoint_id,
            cpu_usage=snapshot.cpu_usage,
            memory_total=snapshot.memory_total,
            memory_used=snapshot.memory_used,
            disk_total=snapshot.disk_total,
            disk_used=snapshot.disk_used,
            processes=snapshot.processes,
            open_ports=snapshot.open_ports,
            installed_software=snapshot.installed_software,
            collected_at=snapshot.collected_at or received_at,
        )
        self.session.add(row)
        await self.session.flush()
        return row

    async def list_for_endpoint(self, endpoint_id: uuid.UUID) -> list[SystemSnapshot]:
        result = await self.session.execute(
            select(SystemSnapshot)
            .where(SystemSnapshot.endpoint_id == endpoint_id)
            .order_by(SystemSnapshot.collected_at)
        )
        return list(result.scalars().all())

    async def purge_older_than(self, cutoff: datetime) -> int:
        result = await self.session.execute(
            delete(SystemSnapshot)
            .where(SystemSnapshot.collected_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
