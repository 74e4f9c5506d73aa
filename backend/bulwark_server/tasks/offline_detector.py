"""
端点离线检测任务模块。

定期扫描心跳超时（默认 10 分钟）的端点并标记为离线。
每次扫描在独立的会话和事务中完成。
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bulwark_server.core.deps import utcnow
from bulwark_server.services.liveness import sweep

logger = logging.getLogger(__name__)


async def check_offline_endpoints(
    sessionmaker: async_sessionmaker[AsyncSession],
    threshold: timedelta,
    clock: Callable[[], datetime] = utcnow,
) -> list[str]:
    """执行一次离线扫描，返回被标记为离线的主机名。"""
    async with sessionmaker() as db:
        return await sweep(db, clock(), threshold)


async def offline_detector_loop(
    sessionmaker: async_sessionmaker[AsyncSession],
    threshold: timedelta,
    interval: float,
    clock: Callable[[], datetime] = utcnow,
):
    """离线检测后台循环。"""
    logger.info("Offline detector started (threshold %s, every %ss)", threshold, interval)
    while True:
        try:
            flipped = await check_offline_endpoints(sessionmaker, threshold, clock)
            if flipped:
                logger.info("Offline sweep: %d endpoint(s) marked offline", len(flipped))
        except Exception:
            logger.exception("Error in offline detector")
        await asyncio.sleep(interval)
