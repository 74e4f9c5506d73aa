"""
Agent 调度器。

单一事件循环内按周期顺序执行（周期之间不重叠）：
注册（如尚未注册）→ 拉取检查 → 在固定大小的工作池中执行检查 → 采集快照 →
心跳 → 提交结果。任何传输失败只记录日志，在下一个周期自然重试。
"""
import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional
from uuid import UUID

from bulwark_agent.checks.executor import CheckExecutor
from bulwark_agent.checks.params import CheckOutcome
from bulwark_agent.collector import SystemCollector
from bulwark_agent.config import AgentConfig
from bulwark_agent.errors import NotRegisteredError, TransportError
from bulwark_agent.models import AssignedCheck, CheckResultItem, SnapshotPayload
from bulwark_agent.transport import AgentClient

logger = logging.getLogger(__name__)


class AgentScheduler:
    """周期性执行检查并与服务端同步。"""

    def __init__(
        self,
        config: AgentConfig,
        client: AgentClient,
        executor: Optional[CheckExecutor] = None,
        collector: Optional[SystemCollector] = None,
    ):
        self.config = config
        self.client = client
        self._pool: Optional[ThreadPoolExecutor] = None
        if executor is None:
            # 阻塞式探测使用与工作池同样大小的线程池
            self._pool = ThreadPoolExecutor(
                max_workers=config.max_workers, thread_name_prefix="bulwark-check"
            )
            executor = CheckExecutor(
                command_timeout=config.command_timeout_secs,
                max_file_bytes=config.max_file_bytes,
                pool=self._pool,
            )
        self.executor = executor
        self.collector = collector or SystemCollector(hostname_override=config.hostname_override)
        self.endpoint_id: Optional[UUID] = None
        self._stop = asyncio.Event()
        self._workers: List[asyncio.Task] = []

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        """请求停止：取消正在执行的检查并唤醒周期等待。进行中的网络请求自行完成或超时。"""
        if self._stop.is_set():
            return
        logger.info("Stop requested")
        self._stop.set()
        for task in self._workers:
            task.cancel()

    def close(self) -> None:
        if self._pool is not None:
            self._pool.shutdown(wait=False, cancel_futures=True)

    async def _run_blocking(self, func):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func)

    def _forget_registration(self, err: NotRegisteredError) -> None:
        logger.warning("Server does not know endpoint %s (%s), will re-register", self.endpoint_id, err)
        self.endpoint_id = None

    async def ensure_registered(self) -> UUID:
        """未注册时向服务端注册，返回 endpoint_id。"""
        if self.endpoint_id is None:
            info = await self._run_blocking(self.collector.system_info)
            resp = await self.client.register(info)
            self.endpoint_id = resp.endpoint_id
            logger.info("Registered %s as endpoint %s", info.hostname, self.endpoint_id)
        return self.endpoint_id

    async def _run_one(self, check: AssignedCheck) -> CheckResultItem:
        timeout = self.config.check_timeout_secs
        try:
            outcome = await asyncio.wait_for(self.executor.execute(check), timeout=timeout)
        except asyncio.TimeoutError:
            outcome = CheckOutcome.errored(f"Check timed out after {timeout}s")
        except Exception as e:
            # 单个检查的意外异常不影响其他检查
            logger.exception("Check %s raised unexpectedly", check.name)
            outcome = CheckOutcome.errored(f"Unexpected error: {type(e).__name__}: {e}")
        logger.info("Check %s [%s]: %s - %s", check.name, check.check_type, outcome.status.value, outcome.message)
        return CheckResultItem(check_id=check.id, status=outcome.status, message=outcome.message)

    async def run_checks(self, checks: List[AssignedCheck]) -> List[CheckResultItem]:
        """在 max_workers 个工作协程中执行检查，返回已完成检查的结果（按完成顺序）。"""
        if not checks:
            return []
        queue: asyncio.Queue = asyncio.Queue()
        for check in checks:
            queue.put_nowait(check)
        results: List[CheckResultItem] = []

        async def worker() -> None:
            while not self._stop.is_set():
                try:
                    check = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                results.append(await self._run_one(check))

        n = min(self.config.max_workers, len(checks))
        self._workers = [asyncio.create_task(worker(), name=f"check-worker-{i}") for i in range(n)]
        try:
            await asyncio.gather(*self._workers, return_exceptions=True)
        finally:
            self._workers = []
        return results

    async def _collect_snapshot(self) -> SnapshotPayload:
        try:
            return await self._run_blocking(self.collector.snapshot)
        except Exception:
            logger.exception("Snapshot collection failed, sending empty snapshot")
            return SnapshotPayload()

    async def run_cycle(self) -> Optional[List[CheckResultItem]]:
        """执行一个完整周期。返回本周期的检查结果；未能拉取检查时返回 None。"""
        try:
            endpoint_id = await self.ensure_registered()
        except TransportError as e:
            logger.warning("Registration failed: %s", e)
            return None

        checks: Optional[List[AssignedCheck]] = None
        try:
            checks = await self.client.fetch_checks(endpoint_id)
            logger.debug("Fetched %d check(s)", len(checks))
        except NotRegisteredError as e:
            self._forget_registration(e)
            return None
        except TransportError as e:
            # 本周期不执行检查，但仍发送心跳
            logger.warning("Failed to fetch checks, skipping execution this cycle: %s", e)

        results = await self.run_checks(checks) if checks is not None else None
        if self._stop.is_set():
            logger.info("Stopping, abandoning the rest of the cycle")
            return results

        snapshot = await self._collect_snapshot()
        try:
            await self.client.heartbeat(endpoint_id, snapshot)
        except NotRegisteredError as e:
            self._forget_registration(e)
            return results
        except TransportError as e:
            logger.warning("Heartbeat failed: %s", e)

        if results:
            try:
                resp = await self.client.submit_results(endpoint_id, results)
                logger.info("Submitted %d result(s), server accepted %d", len(results), resp.accepted_count)
            except NotRegisteredError as e:
                self._forget_registration(e)
            except TransportError as e:
                logger.warning("Result submission failed: %s", e)
        return results

    async def run(self) -> None:
        """前台循环，直到 stop() 被调用。"""
        interval = self.config.collection_interval_secs
        logger.info("Scheduler started, interval %ss, %d worker(s)", interval, self.config.max_workers)
        try:
            while not self._stop.is_set():
                try:
                    await self.run_cycle()
                except Exception:
                    logger.exception("Cycle failed, retrying next interval")
                try:
                    await asyncio.wait_for(self._stop.wait(), timeout=interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            self.close()
        logger.info("Scheduler stopped")
