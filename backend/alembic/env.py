"""Alembic 迁移环境。

数据库地址优先级：命令行 ``-x dsn=...`` → alembic.ini 中的 sqlalchemy.url → Settings.database_url。
在线迁移复用服务端的 create_engine()，SQLite 下使用 batch 模式以支持 ALTER。
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy.engine import Connection

from bulwark_server import models  # noqa: F401  注册全部表到 Base.metadata
from bulwark_server.core.config import get_settings
from bulwark_server.core.database import Base, create_engine

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def _database_url() -> str:
    return (
        context.get_x_argument(as_dictionary=True).get("dsn")
        or config.get_main_option("sqlalchemy.url")
        or get_settings().database_url
    )


def _configure(**kwargs) -> None:
    url = kwargs.pop("url", None) or _database_url()
    context.configure(
        target_metadata=Base.metadata,
        compare_type=True,
        render_as_batch=url.startswith("sqlite"),
        url=url if "connection" not in kwargs else None,
        **kwargs,
    )


def run_offline() -> None:
    """只输出 SQL，不连接数据库。"""
    _configure(literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()


def _migrate(connection: Connection, url: str) -> None:
    _configure(connection=connection, url=url)
    with context.begin_transaction():
        context.run_migrations()


async def run_online() -> None:
    url = _database_url()
    engine = create_engine(url)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_migrate, url)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    run_offline()
else:
    asyncio.run(run_online())
