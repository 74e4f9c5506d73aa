"""
Agent 传输客户端 - 与 Bulwark Server 通信。

每个请求携带 X-Agent-Secret 头。网络错误、超时、响应解码失败和 5xx 按 RetryPolicy 退避重试，
4xx 不重试：401 → AgentAuthError，端点相关接口的 404 → NotRegisteredError，
其余 4xx → RequestRejectedError。重试耗尽时抛出 TransportError。
"""
import asyncio
import logging
from typing import Any, List, Optional, Type, TypeVar
from uuid import UUID

import httpx
from pydantic import BaseModel, ValidationError

from bulwark_agent.config import AgentConfig
from bulwark_agent.errors import (
    AgentAuthError,
    NotRegisteredError,
    RequestRejectedError,
    TransportError,
)
from bulwark_agent.models import (
    AssignedCheck,
    CheckListResponse,
    CheckResultItem,
    HeartbeatResponse,
    RegisterRequest,
    RegisterResponse,
    SnapshotPayload,
    SubmissionResponse,
)
from bulwark_agent.retry import RetryPolicy, SleepFunc

logger = logging.getLogger(__name__)

SECRET_HEADER = "X-Agent-Secret"

M = TypeVar("M", bound=BaseModel)


def _error_detail(resp: httpx.Response) -> str:
    """提取服务端错误响应中的 message 字段。"""
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(body, dict):
        return str(body.get("message") or body.get("detail") or body)
    return str(body)


class AgentClient:
    """Bulwark Server 的异步 HTTP 客户端。"""

    def __init__(
        self,
        server_url: str,
        agent_secret: str,
        *,
        timeout: float = 30.0,
        retry: Optional[RetryPolicy] = None,
        sleep: Optional[SleepFunc] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.retry = retry or RetryPolicy()
        self._sleep = sleep or asyncio.sleep
        self._client = httpx.AsyncClient(
            base_url=server_url,
            headers={SECRET_HEADER: agent_secret},
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_config(cls, cfg: AgentConfig, **kwargs) -> "AgentClient":
        return cls(
            cfg.server_url,
            cfg.agent_secret,
            timeout=cfg.request_timeout_secs,
            retry=RetryPolicy.from_config(cfg.retry),
            **kwargs,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "AgentClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def _client_error(self, resp: httpx.Response, endpoint_scoped: bool) -> TransportError:
        detail = _error_detail(resp)
        status = resp.status_code
        if status == 401:
            return AgentAuthError(f"Authentication rejected: {detail}", status_code=status)
        if status == 404 and endpoint_scoped:
            return NotRegisteredError(f"Endpoint not registered: {detail}", status_code=status)
        return RequestRejectedError(f"Request rejected (HTTP {status}): {detail}", status_code=status)

    async def _request(
        self,
        method: str,
        path: str,
        model: Type[M],
        *,
        endpoint_scoped: bool = True,
        json: Any = None,
        params: Optional[dict] = None,
    ) -> M:
        attempts = self.retry.max_attempts
        reason = ""
        status_code = None
        for attempt in range(1, attempts + 1):
            try:
                resp = await self._client.request(method, path, json=json, params=params)
            except httpx.RequestError as e:
                reason = f"{type(e).__name__}: {e}"
                status_code = None
            else:
                if resp.status_code < 400:
                    try:
                        return model.model_validate(resp.json())
                    except (ValueError, ValidationError) as e:
                        raise TransportError(f"Malformed response from {path}: {e}") from e
                if resp.status_code < 500:
                    raise self._client_error(resp, endpoint_scoped)
                reason = f"HTTP {resp.status_code}: {_error_detail(resp)}"
                status_code = resp.status_code

            if attempt < attempts:
                delay = self.retry.delay(attempt)
                logger.warning(
                    "%s %s failed (%s), retry %d/%d in %.1fs",
                    method, path, reason, attempt, attempts - 1, delay,
                )
                await self._sleep(delay)

        raise TransportError(
            f"{method} {path} failed after {attempts} attempt(s): {reason}",
            status_code=status_code,
        )

    async def register(self, info: RegisterRequest) -> RegisterResponse:
        return await self._request(
            "POST", "/api/agent/register", RegisterResponse,
            endpoint_scoped=False,
            json=info.model_dump(mode="json"),
        )

    async def heartbeat(self, endpoint_id: UUID, snapshot: SnapshotPayload) -> HeartbeatResponse:
        payload = {"endpoint_id": str(endpoint_id), "snapshot": snapshot.model_dump(mode="json")}
        return await self._request("POST", "/api/agent/heartbeat", HeartbeatResponse, json=payload)

    async def fetch_checks(self, endpoint_id: UUID) -> List[AssignedCheck]:
        resp = await self._request(
            "GET", "/api/agent/checks", CheckListResponse,
            params={"endpoint_id": str(endpoint_id)},
        )
        return resp.checks

    async def submit_results(
        self, endpoint_id: UUID, results: List[CheckResultItem]
    ) -> SubmissionResponse:
        payload = {
            "endpoint_id": str(endpoint_id),
            "results": [r.model_dump(mode="json") for r in results],
        }
        return await self._request("POST", "/api/agent/results", SubmissionResponse, json=payload)
