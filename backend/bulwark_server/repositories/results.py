"""检查结果仓储，只追加。"""
import uuid
from typing import Iterable

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from bulwark_server.models.check_result import CheckResult
from bulwark_server.schemas.agent import ResultItem


class ResultRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def append(self, endpoint_id: uuid.UUID, items: Iterable[ResultItem]) -> int:
        rows = [
            CheckResult(
                endpoint_id=endpoint_id,
                check_id=item.check_id,
                status=item.status.value,
                message=item.message,
                collected_at=item.collected_at,
            )
            for item in items
        ]
        self.session.add_all(rows)
        await self.session.flush()
        return len(rows)

    async def list_for_endpoint(self, endpoint_id: uuid.UUID) -> list[CheckResult]:
        result = await self.session.execute(
            select(CheckResult)
            .where(CheckResult.endpoint_id == endpoint_id)
            .order_by(CheckResult.created_at)
        )
        return list(result.scalars().all())

    async def count_for_endpoint(self, endpoint_id: uuid.UUID) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(CheckResult).where(CheckResult.endpoint_id == endpoint_id)
        )
        return result.scalar_one()
