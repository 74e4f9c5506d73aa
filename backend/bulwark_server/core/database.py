"""
数据库连接模块 (Database Connection Module)

基于 SQLAlchemy 2.0 异步模式创建数据库引擎和会话工厂。
引擎与会话工厂由 create_app() 根据配置创建并挂载到 app.state，
请求通过 get_db 依赖项获得会话。

Creates the async engine and session factory. Both are built by create_app()
from settings and attached to app.state; requests obtain a session through
the get_db dependency.
"""
from typing import AsyncIterator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool


class Base(DeclarativeBase):
    """ORM 模型基类 (ORM Model Base Class)"""
    pass


def create_engine(url: str, echo: bool = False) -> AsyncEngine:
    """创建异步引擎；内存 SQLite 使用单连接池，保证所有会话看到同一个库。"""
    if url.startswith("sqlite") and ":memory:" in url:
        return create_async_engine(
            url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    return create_async_engine(url, echo=echo, pool_pre_ping=True)


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # 提交后不过期对象，便于访问已保存的数据
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """
    FastAPI 依赖项：获取数据库会话 (FastAPI Dependency: Get Database Session)

    使用异步上下文管理器确保会话在请求结束后关闭，防止连接泄漏。
    """
    async with request.app.state.sessionmaker() as session:
        yield session
