"""
FastAPI 依赖项模块 (FastAPI Dependencies Module)

提供配置与时钟的依赖注入。时钟可在 create_app() 中替换，测试据此模拟时间推进。
"""
from datetime import datetime, timezone

from fastapi import Request

from bulwark_server.core.config import Settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_now(request: Request) -> datetime:
    """当前时间（UTC），来自 app.state.clock。"""
    return request.app.state.clock()
