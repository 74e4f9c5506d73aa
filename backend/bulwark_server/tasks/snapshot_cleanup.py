"""
快照清理任务模块。

定期删除超过保留期限的系统快照，防止快照数据无限增长。默认保留 7 天。
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bulwark_server.core.deps import utcnow
from bulwark_server.repositories.snapshots import SnapshotRepository

logger = logging.getLogger(__name__)

CLEANUP_INTERVAL = 3600  # 每小时执行一次


async def purge_expired_snapshots(
    sessionmaker: async_sessionmaker[AsyncSession],
    retention_days: int,
    clock: Callable[[], datetime] = utcnow,
) -> int:
    cutoff = clock() - timedelta(days=retention_days)
    async with sessionmaker() as db:
        deleted = await SnapshotRepository(db).purge_older_than(cutoff)
        await db.commit()
    return deleted


async def snapshot_cleanup_loop(
    sessionmaker: async_sessionmaker[AsyncSession],
    retention_days: int,
    clock: Callable[[], datetime] = utcnow,
):
    """快照清理后台循环。"""
    logger.info(f"Starting snapshot cleanup loop with {retention_days} days retention")
    while True:
        try:
            deleted = await purge_expired_snapshots(sessionmaker, retention_days, clock)
            if deleted > 0:
                logger.info(f"Snapshot cleanup: deleted {deleted} snapshots older than {retention_days} days")
            else:
                logger.debug(f"Snapshot cleanup: no snapshots older than {retention_days} days found")
        except Exception as e:
            logger.exception(f"Snapshot cleanup error: {e}")
        await asyncio.sleep(CLEANUP_INTERVAL)
