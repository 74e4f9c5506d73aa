"""
Agent 配置加载模块。

定义配置数据类，并从 YAML 文件加载配置。
支持环境变量覆盖（如 BULWARK_AGENT_SECRET）和时间间隔简写（如 '15s'、'5m'）。
配置在启动时构造一次，之后不可变，作为参数传入各组件。
"""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from bulwark_agent.errors import ConfigError

DEFAULT_CONFIG_PATH = "/etc/bulwark/agent.yaml"


@dataclass(frozen=True)
class RetryConfig:
    """传输层重试配置。"""
    max_attempts: int = 3
    base_delay_secs: float = 1.0
    max_delay_secs: float = 30.0


@dataclass(frozen=True)
class AgentConfig:
    """Agent 主配置。"""
    server_url: str = ""
    agent_secret: str = ""
    collection_interval_secs: int = 300  # 采集周期（秒）
    hostname_override: Optional[str] = None
    max_workers: int = 4  # 检查执行并发数，与检查数量无关
    check_timeout_secs: float = 60.0  # 单个检查的执行上限
    command_timeout_secs: float = 30.0  # command_output 命令超时
    max_file_bytes: int = 10 * 1024 * 1024  # file_content 读取上限
    request_timeout_secs: float = 30.0
    retry: RetryConfig = field(default_factory=RetryConfig)

    def validate(self) -> None:
        """校验必填项和数值范围。

        Raises:
            ConfigError: 配置不完整或取值非法时抛出。
        """
        if not self.server_url:
            raise ConfigError("server_url is required (config file or BULWARK_SERVER_URL)")
        if not self.agent_secret:
            raise ConfigError("agent_secret is required (config file or BULWARK_AGENT_SECRET)")
        if self.collection_interval_secs <= 0:
            raise ConfigError("collection_interval_secs must be positive")
        if self.max_workers < 1:
            raise ConfigError("max_workers must be at least 1")
        if self.check_timeout_secs <= 0 or self.command_timeout_secs <= 0:
            raise ConfigError("timeouts must be positive")
        if self.retry.max_attempts < 1:
            raise ConfigError("retry.max_attempts must be at least 1")


def _parse_interval(val) -> int:
    """解析时间间隔，支持 '15s'、'1m' 等简写格式。"""
    if isinstance(val, int):
        return val
    s = str(val).strip().lower()
    try:
        if s.endswith("s"):
            return int(s[:-1])
        if s.endswith("m"):
            return int(s[:-1]) * 60
        return int(s)
    except ValueError:
        raise ConfigError(f"Invalid interval: {val!r}") from None


def load_config(path: Optional[str] = None, environ: Optional[dict] = None) -> AgentConfig:
    """从 YAML 文件加载 Agent 配置，环境变量优先。

    Args:
        path: 配置文件路径；为 None 时只读取环境变量。
        environ: 环境变量映射，默认 os.environ（便于测试注入）。

    Returns:
        解析后的 AgentConfig 实例（尚未校验必填项）。

    Raises:
        FileNotFoundError: 指定的配置文件不存在时抛出。
        ConfigError: 配置格式错误时抛出。
    """
    env = os.environ if environ is None else environ
    data: dict = {}
    if path is not None:
        p = Path(path)
        if not p.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(p) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ConfigError(f"Config file must contain a mapping: {path}")

    defaults = AgentConfig()

    # 服务端地址与共享密钥，环境变量覆盖文件配置
    server_url = env.get("BULWARK_SERVER_URL", data.get("server_url", "")) or ""
    agent_secret = env.get("BULWARK_AGENT_SECRET", data.get("agent_secret", "")) or ""

    interval = env.get("BULWARK_COLLECTION_INTERVAL", data.get("collection_interval_secs"))
    hostname = env.get("BULWARK_HOSTNAME", data.get("hostname_override")) or None

    r = data.get("retry", {}) or {}

    try:
        retry = RetryConfig(
            max_attempts=int(r.get("max_attempts", defaults.retry.max_attempts)),
            base_delay_secs=float(r.get("base_delay_secs", defaults.retry.base_delay_secs)),
            max_delay_secs=float(r.get("max_delay_secs", defaults.retry.max_delay_secs)),
        )
        return AgentConfig(
            server_url=str(server_url).rstrip("/"),
            agent_secret=str(agent_secret),
            collection_interval_secs=(
                _parse_interval(interval) if interval is not None else defaults.collection_interval_secs
            ),
            hostname_override=hostname,
            max_workers=int(data.get("max_workers", defaults.max_workers)),
            check_timeout_secs=float(data.get("check_timeout_secs", defaults.check_timeout_secs)),
            command_timeout_secs=float(data.get("command_timeout_secs", defaults.command_timeout_secs)),
            max_file_bytes=int(data.get("max_file_bytes", defaults.max_file_bytes)),
            request_timeout_secs=float(data.get("request_timeout_secs", defaults.request_timeout_secs)),
            retry=retry,
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid config value: {e}") from e
