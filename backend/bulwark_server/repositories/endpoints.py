"""
端点仓储

注册使用 INSERT ... ON CONFLICT (hostname) DO UPDATE 原子 upsert，
并发的同名注册只会产生一行。离线扫描的状态写入带 last_seen 比较条件。
"""
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from bulwark_server.models.endpoint import Endpoint, EndpointStatus

_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}

# 重复注册只覆盖描述字段，在线状态字段保持不变
DESCRIPTIVE_FIELDS = ("os", "os_version", "agent_version", "ip_addresses")


class EndpointRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    def _insert(self):
        dialect = self.session.get_bind().dialect.name
        try:
            return _INSERTS[dialect]
        except KeyError:
            raise NotImplementedError(f"Endpoint upsert is not supported on {dialect}") from None

    async def upsert(
        self,
        hostname: str,
        os: str,
        os_version: str,
        agent_version: str,
        ip_addresses: list[str],
    ) -> uuid.UUID:
        """按 hostname 插入或更新端点，返回稳定的 endpoint id。"""
        stmt = self._insert()(Endpoint).values(
            id=uuid.uuid4(),
            hostname=hostname,
            os=os,
            os_version=os_version,
            agent_version=agent_version,
            ip_addresses=ip_addresses,
            status=EndpointStatus.UNKNOWN.value,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[Endpoint.hostname],
            set_={name: stmt.excluded[name] for name in DESCRIPTIVE_FIELDS},
        ).returning(Endpoint.id)
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def get(self, endpoint_id: uuid.UUID) -> Optional[Endpoint]:
        return await self.session.get(Endpoint, endpoint_id, populate_existing=True)

    async def get_by_hostname(self, hostname: str) -> Optional[Endpoint]:
        result = await self.session.execute(select(Endpoint).where(Endpoint.hostname == hostname))
        return result.scalar_one_or_none()

    async def sweep_candidates(self, cutoff: datetime) -> list[Endpoint]:
        """last_seen 早于 cutoff 且尚未标记离线的端点。"""
        result = await self.session.execute(
            select(Endpoint).where(
                Endpoint.last_seen.is_not(None),
                Endpoint.last_seen < cutoff,
                Endpoint.status != EndpointStatus.OFFLINE.value,
            )
        )
        return list(result.scalars().all())

    async def set_status_if_unchanged(
        self,
        endpoint_id: uuid.UUID,
        observed_last_seen: datetime,
        status: EndpointStatus,
    ) -> bool:
        """仅当 last_seen 仍为观察到的值时写入新状态；期间有心跳则不写入。"""
        result = await self.session.execute(
            update(Endpoint)
            .where(Endpoint.id == endpoint_id, Endpoint.last_seen == observed_last_seen)
            .values(status=status.value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
