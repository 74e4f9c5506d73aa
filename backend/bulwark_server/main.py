"""
Bulwark 服务端应用入口模块 (Bulwark Server Application Entry Module)

create_app() 根据配置创建 FastAPI 应用：数据库引擎与会话工厂、时钟和配置挂载在 app.state，
生命周期内启动离线检测与快照清理两个后台任务。

create_app() builds the FastAPI application from settings. The engine,
session factory, clock and settings live on app.state; the lifespan starts the
offline detector and snapshot cleanup background tasks.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bulwark_server import __version__
from bulwark_server.core.config import Settings, get_settings
from bulwark_server.core.database import Base, create_engine, create_sessionmaker
from bulwark_server.core.deps import utcnow
from bulwark_server.core.exceptions import register_exception_handlers
# 导入所有模型以确保 SQLAlchemy 表注册
from bulwark_server import models  # noqa: F401
from bulwark_server.routers import agent

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    应用生命周期管理器 (Application Lifecycle Manager)

    启动时创建缺失的表并启动后台任务，关闭时取消任务并释放连接池。
    """
    from bulwark_server.tasks.offline_detector import offline_detector_loop
    from bulwark_server.tasks.snapshot_cleanup import snapshot_cleanup_loop

    settings: Settings = app.state.settings
    state = app.state

    async with state.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    tasks = [
        asyncio.create_task(offline_detector_loop(
            state.sessionmaker,
            timedelta(minutes=settings.offline_threshold_minutes),
            settings.sweep_interval_secs,
            state.clock,
        )),
        asyncio.create_task(snapshot_cleanup_loop(
            state.sessionmaker,
            settings.snapshot_retention_days,
            state.clock,
        )),
    ]

    yield

    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
    await state.engine.dispose()


def create_app(
    settings: Optional[Settings] = None,
    *,
    sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None,
    clock: Callable[[], datetime] = utcnow,
) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title="Bulwark",
        description="Endpoint compliance checks | 端点合规检查",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    if sessionmaker is None:
        engine = create_engine(settings.database_url)
        sessionmaker = create_sessionmaker(engine)
    app.state.engine = sessionmaker.kw["bind"]
    app.state.sessionmaker = sessionmaker
    app.state.clock = clock

    # 注册全局异常处理器
    register_exception_handlers(app)

    app.include_router(agent.router)  # Agent 协议接口

    @app.get("/health")
    async def health(request: Request):
        """健康检查接口：验证数据库连通性，不需要认证。"""
        try:
            async with request.app.state.sessionmaker() as db:
                await db.execute(text("SELECT 1"))
        except Exception as e:
            logger.warning("Health check failed: %s", e)
            return JSONResponse(
                status_code=503,
                content={"status": "degraded", "database": "unavailable", "version": __version__},
            )
        return {"status": "ok", "database": "ok", "version": __version__}

    return app


def run() -> None:
    """bulwark-server 命令入口：通过 uvicorn 启动服务。"""
    import uvicorn

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_level=settings.log_level)


if __name__ == "__main__":
    run()
