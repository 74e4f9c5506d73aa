"""
Bulwark Agent 测试基础配置

提供可控的平台能力实现、检查构造函数和检查执行器 fixture。
"""
import uuid
from typing import Iterable, Optional

import pytest

from bulwark_agent.capabilities import (
    UNSUPPORTED,
    Capability,
    PlatformCapabilities,
    ProcessEntry,
    RegistryValue,
)
from bulwark_agent.checks.executor import CheckExecutor
from bulwark_agent.models import AssignedCheck


class FakeCapabilities(PlatformCapabilities):
    """内存中的平台能力，进程表和注册表由测试直接给出。"""

    name = "fake"

    def __init__(
        self,
        supported: Iterable[Capability] = (Capability.PROCESSES, Capability.LISTENING_PORTS),
        processes: Iterable[ProcessEntry] = (),
        listening: Iterable[int] = (),
        registry: Optional[dict] = None,
    ):
        self.supported = frozenset(supported)
        self.processes = list(processes)
        self.listening = set(listening)
        # {key_path: {value_name: value}}
        self.registry = registry or {}

    def list_processes(self):
        if Capability.PROCESSES not in self.supported:
            return UNSUPPORTED
        return list(self.processes)

    def list_listening_ports(self):
        if Capability.LISTENING_PORTS not in self.supported:
            return UNSUPPORTED
        return set(self.listening)

    def read_registry_value(self, path, name=None):
        if Capability.REGISTRY not in self.supported:
            return UNSUPPORTED
        hive = path.split("\\", 1)[0].upper()
        if hive not in ("HKLM", "HKEY_LOCAL_MACHINE", "HKCU", "HKEY_CURRENT_USER"):
            raise ValueError(f"Unsupported registry hive in path: {path}")
        values = self.registry.get(path)
        if values is None:
            return RegistryValue(key_exists=False)
        if name is None:
            return RegistryValue(key_exists=True)
        if name not in values:
            return RegistryValue(key_exists=True, value_exists=False)
        return RegistryValue(key_exists=True, value_exists=True, value=values[name])

    def probe_local_port(self, port, timeout=1.0):
        return False


def make_check(check_type: str, **parameters) -> AssignedCheck:
    return AssignedCheck(
        id=uuid.uuid4(),
        name=f"{check_type}-check",
        check_type=check_type,
        parameters=parameters,
    )


@pytest.fixture
def check_factory():
    return make_check


@pytest.fixture
def fake_caps() -> FakeCapabilities:
    return FakeCapabilities()


@pytest.fixture
def executor(fake_caps) -> CheckExecutor:
    return CheckExecutor(fake_caps, command_timeout=5.0, max_file_bytes=1024)


@pytest.fixture
def caps_factory():
    return FakeCapabilities
