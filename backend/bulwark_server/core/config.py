"""
应用配置模块 (Application Configuration Module)

使用 Pydantic Settings 管理 Bulwark 服务端的配置项，支持从 .env 文件和环境变量读取。
配置对象不可变，在进程启动时通过 get_settings() 构造一次并挂载到 app.state。

Uses Pydantic Settings to manage server configuration from a .env file and
environment variables. The settings object is frozen, built once by
get_settings() and attached to app.state.
"""
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    应用全局配置类 (Application Global Configuration Class)

    字段名自动映射同名环境变量（不区分大小写）。agent_secret 为必填项，
    缺失时启动即失败，而不是带着空密钥运行。
    """

    # Agent 共享密钥 (Agent Shared Secret)
    agent_secret: str = Field(min_length=1)

    # 在线状态判定 (Liveness)
    offline_threshold_minutes: int = Field(default=10, gt=0)  # 超过该时长无心跳视为离线
    sweep_interval_secs: int = Field(default=60, gt=0)  # 离线扫描间隔
    snapshot_retention_days: int = Field(default=7, gt=0)  # 系统快照保留天数

    # 数据库配置 (Database Configuration)
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "bulwark"
    postgres_user: str = "bulwark"
    postgres_password: str = "bulwark_dev_password"
    database_dsn: Optional[str] = None  # 完整连接串，设置后覆盖 postgres_* 配置

    # 服务监听 (HTTP Server)
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "info"

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", frozen=True
    )

    @property
    def database_url(self) -> str:
        """
        构造异步连接 URL (Build Async Connection URL)

        未设置 DATABASE_DSN 时，根据 postgres_* 生成适用于 asyncpg 驱动的连接字符串。
        """
        if self.database_dsn:
            return self.database_dsn
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )


@lru_cache
def get_settings() -> Settings:
    """读取环境并构造配置（进程内只构造一次）。"""
    return Settings()
