"""
端点在线状态机 (Endpoint Liveness State Machine)

next_status() 是唯一的状态转换函数，心跳处理和离线扫描两个写入方都通过它计算新状态：

- HEARTBEAT：无条件转为 online；
- SWEEP：last_seen 存在且 now - last_seen 超过阈值时转为 offline，
  从未心跳的端点保持 unknown，其余情况保持不变。

离线扫描的写入带 last_seen 比较条件，扫描期间到达的心跳不会被覆盖为离线。
"""
import enum
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from bulwark_server.models.endpoint import Endpoint, EndpointStatus
from bulwark_server.repositories.endpoints import EndpointRepository

logger = logging.getLogger(__name__)


class LivenessEvent(str, enum.Enum):
    HEARTBEAT = "heartbeat"
    SWEEP = "sweep"


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite 读回的时间不带时区，统一视为 UTC。"""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def next_status(
    current: EndpointStatus,
    last_seen: Optional[datetime],
    now: datetime,
    threshold: timedelta,
    event: LivenessEvent,
) -> EndpointStatus:
    if event is LivenessEvent.HEARTBEAT:
        return EndpointStatus.ONLINE
    if last_seen is None:
        return current
    if now - as_utc(last_seen) > threshold:
        return EndpointStatus.OFFLINE
    return current


def apply_heartbeat(endpoint: Endpoint, now: datetime, threshold: timedelta) -> EndpointStatus:
    """在 ORM 对象上应用心跳事件，返回新状态。调用方负责提交。"""
    current = EndpointStatus(endpoint.status)
    new = next_status(current, endpoint.last_seen, now, threshold, LivenessEvent.HEARTBEAT)
    if current is not new:
        logger.info("Endpoint %s (%s) is %s", endpoint.hostname, endpoint.id, new.value)
    endpoint.status = new.value
    endpoint.last_seen = now
    return new


async def sweep(session: AsyncSession, now: datetime, threshold: timedelta) -> list[str]:
    """
    扫描心跳超时的端点并标记为离线，在单个事务内完成。

    Returns:
        本次被标记为离线的端点主机名列表。重复执行是幂等的。
    """
    repo = EndpointRepository(session)
    flipped: list[str] = []
    for endpoint in await repo.sweep_candidates(now - threshold):
        current = EndpointStatus(endpoint.status)
        new = next_status(current, endpoint.last_seen, now, threshold, LivenessEvent.SWEEP)
        if new is current:
            continue
        if await repo.set_status_if_unchanged(endpoint.id, endpoint.last_seen, new):
            flipped.append(endpoint.hostname)
            logger.warning(
                "Endpoint %s (id=%s) marked %s, last seen %s",
                endpoint.hostname, endpoint.id, new.value, as_utc(endpoint.last_seen).isoformat(),
            )
        else:
            logger.info("Endpoint %s sent a heartbeat during sweep, status unchanged", endpoint.hostname)
    await session.commit()
    return flipped
