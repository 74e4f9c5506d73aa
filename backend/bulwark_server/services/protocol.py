"""
Agent 协议处理服务

注册、心跳、检查下发和结果提交的业务逻辑。每个操作在一个事务内完成；
数据库异常回滚后以 PersistenceError 抛出，业务异常同样先回滚再抛出。
"""
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import AsyncIterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bulwark_server.core.exceptions import PersistenceError, UnknownEndpointError, ValidationError
from bulwark_server.models.check_definition import CheckDefinition
from bulwark_server.models.endpoint import Endpoint
from bulwark_server.repositories import (
    CheckRepository,
    EndpointRepository,
    ResultRepository,
    SnapshotRepository,
)
from bulwark_server.schemas.agent import HeartbeatRequest, RegisterRequest, ResultSubmission
from bulwark_server.services.liveness import apply_heartbeat

logger = logging.getLogger(__name__)


class ProtocolService:
    def __init__(self, session: AsyncSession, offline_threshold: timedelta):
        self.session = session
        self.offline_threshold = offline_threshold
        self.endpoints = EndpointRepository(session)
        self.checks = CheckRepository(session)
        self.results = ResultRepository(session)
        self.snapshots = SnapshotRepository(session)

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncIterator[None]:
        try:
            yield
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.exception("Database error during %s", operation)
            raise PersistenceError(f"Failed to {operation}", detail=str(e)) from e
        except Exception:
            await self.session.rollback()
            raise

    async def _require_endpoint(self, endpoint_id: uuid.UUID) -> Endpoint:
        endpoint = await self.endpoints.get(endpoint_id)
        if endpoint is None:
            raise UnknownEndpointError(f"Endpoint {endpoint_id} is not registered")
        return endpoint

    async def register(self, req: RegisterRequest) -> uuid.UUID:
        async with self._transaction("register endpoint"):
            endpoint_id = await self.endpoints.upsert(
                hostname=req.hostname,
                os=req.os,
                os_version=req.os_version,
                agent_version=req.agent_version,
                ip_addresses=req.ip_addresses,
            )
        logger.info("Endpoint %s registered as %s", req.hostname, endpoint_id)
        return endpoint_id

    async def heartbeat(self, req: HeartbeatRequest, now: datetime) -> None:
        """存储快照并把端点标记为 online，两者在同一事务内。"""
        async with self._transaction("record heartbeat"):
            endpoint = await self._require_endpoint(req.endpoint_id)
            await self.snapshots.append(endpoint.id, req.snapshot, received_at=now)
            apply_heartbeat(endpoint, now, self.offline_threshold)

    async def assigned_checks(self, endpoint_id: uuid.UUID) -> list[CheckDefinition]:
        """当前所有启用的检查定义都分配给每个端点。"""
        async with self._transaction("list assigned checks"):
            await self._require_endpoint(endpoint_id)
            checks = await self.checks.list_enabled()
        return checks

    async def submit_results(self, submission: ResultSubmission) -> int:
        """追加写入全部结果；任一 check_id 不存在则整批拒绝。"""
        async with self._transaction("store check results"):
            await self._require_endpoint(submission.endpoint_id)
            referenced = {item.check_id for item in submission.results}
            unknown = referenced - await self.checks.existing_ids(referenced)
            if unknown:
                raise ValidationError(
                    "Submission references unknown check ids",
                    detail=", ".join(sorted(str(i) for i in unknown)),
                )
            accepted = await self.results.append(submission.endpoint_id, submission.results)
        logger.debug("Stored %d result(s) for endpoint %s", accepted, submission.endpoint_id)
        return accepted
