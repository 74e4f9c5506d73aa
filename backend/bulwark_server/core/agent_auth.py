"""
Agent 共享密钥认证模块

校验 Agent 请求头 X-Agent-Secret 与服务端配置的共享密钥是否一致。
认证失败时不产生任何状态变更。
"""
import secrets
from typing import Optional

from fastapi import Request, Security
from fastapi.security import APIKeyHeader

from bulwark_server.core.exceptions import AuthError

SECRET_HEADER = "X-Agent-Secret"

# Agent 专用请求头认证方案
agent_secret_header = APIKeyHeader(name=SECRET_HEADER, auto_error=False)


async def verify_agent_secret(
    request: Request,
    secret: Optional[str] = Security(agent_secret_header),
) -> None:
    """验证共享密钥，使用常量时间比较。"""
    expected = request.app.state.settings.agent_secret
    if not secret or not secrets.compare_digest(secret.encode(), expected.encode()):
        raise AuthError("Invalid or missing agent secret")
