"""检查定义仓储"""
import uuid
from typing import Any, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bulwark_server.models.check_definition import CheckDefinition


class CheckRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_enabled(self) -> list[CheckDefinition]:
        """所有启用的检查定义，按名称排序。"""
        result = await self.session.execute(
            select(CheckDefinition)
            .where(CheckDefinition.enabled.is_(True))
            .order_by(CheckDefinition.name, CheckDefinition.id)
        )
        return list(result.scalars().all())

    async def existing_ids(self, ids: Iterable[uuid.UUID]) -> set[uuid.UUID]:
        wanted = set(ids)
        if not wanted:
            return set()
        result = await self.session.execute(
            select(CheckDefinition.id).where(CheckDefinition.id.in_(wanted))
        )
        return set(result.scalars().all())

    async def names(self) -> set[str]:
        result = await self.session.execute(select(CheckDefinition.name))
        return set(result.scalars().all())

    async def create(
        self,
        name: str,
        check_type: str,
        parameters: dict[str, Any],
        severity: str = "medium",
        description: Optional[str] = None,
        enabled: bool = True,
    ) -> CheckDefinition:
        check = CheckDefinition(
            name=name,
            check_type=check_type,
            parameters=parameters,
            severity=severity,
            description=description,
            enabled=enabled,
        )
        self.session.add(check)
        await self.session.flush()
        return check
