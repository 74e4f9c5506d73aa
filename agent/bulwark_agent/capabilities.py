"""
平台能力层。

把进程枚举、监听端口、注册表读取等与操作系统相关的探测收敛到统一接口，
检查执行器只在运行时询问"当前平台是否具备某项能力"，不做平台分支判断。
平台不具备某项能力时返回 UNSUPPORTED 哨兵值，而不是抛出异常。
"""
import enum
import logging
import os
import socket
import sys
from dataclasses import dataclass
from typing import List, Optional, Set, Union

import psutil

logger = logging.getLogger(__name__)


class Capability(str, enum.Enum):
    """可查询的平台能力。"""
    PROCESSES = "processes"
    LISTENING_PORTS = "listening_ports"
    REGISTRY = "registry"


class _Unsupported:
    """平台不支持的哨兵类型。"""
    __slots__ = ()

    def __repr__(self) -> str:
        return "UNSUPPORTED"

    def __bool__(self) -> bool:
        return False


UNSUPPORTED = _Unsupported()


@dataclass(frozen=True)
class ProcessEntry:
    """进程表中的一项。"""
    pid: int
    name: str
    exe: str = ""  # 可执行文件名（不含目录）


@dataclass(frozen=True)
class RegistryValue:
    """注册表查询结果。"""
    key_exists: bool
    value_exists: bool = False
    value: Optional[str] = None


# 注册表根键别名 -> winreg 常量名
_HIVE_ALIASES = {
    "HKEY_LOCAL_MACHINE": "HKEY_LOCAL_MACHINE",
    "HKLM": "HKEY_LOCAL_MACHINE",
    "HKEY_CURRENT_USER": "HKEY_CURRENT_USER",
    "HKCU": "HKEY_CURRENT_USER",
    "HKEY_CLASSES_ROOT": "HKEY_CLASSES_ROOT",
    "HKCR": "HKEY_CLASSES_ROOT",
    "HKEY_USERS": "HKEY_USERS",
    "HKU": "HKEY_USERS",
}


class PlatformCapabilities:
    """能力接口基类，默认不支持任何能力。"""

    name = "generic"
    supported: frozenset = frozenset()

    def supports(self, capability: Capability) -> bool:
        return capability in self.supported

    def list_processes(self) -> Union[List[ProcessEntry], _Unsupported]:
        return UNSUPPORTED

    def list_listening_ports(self) -> Union[Set[int], _Unsupported]:
        return UNSUPPORTED

    def read_registry_value(
        self, path: str, name: Optional[str] = None
    ) -> Union[RegistryValue, _Unsupported]:
        return UNSUPPORTED

    def probe_local_port(self, port: int, timeout: float = 1.0) -> bool:
        """尝试连接本机回环地址上的端口，只探测本机，不跨网络。"""
        for host in ("127.0.0.1", "::1"):
            try:
                with socket.create_connection((host, port), timeout=timeout):
                    return True
            except OSError:
                continue
        return False


class PsutilCapabilities(PlatformCapabilities):
    """基于 psutil 的进程表与套接字表实现（Linux / macOS / Windows 通用）。"""

    name = "psutil"
    supported = frozenset({Capability.PROCESSES, Capability.LISTENING_PORTS})

    def list_processes(self) -> List[ProcessEntry]:
        entries = []
        # process_iter 对无权限读取的属性返回 None，不会抛出 AccessDenied
        for proc in psutil.process_iter(["pid", "name", "exe"]):
            info = proc.info
            exe = info.get("exe") or ""
            entries.append(ProcessEntry(
                pid=info["pid"],
                name=info.get("name") or "",
                exe=os.path.basename(exe),
            ))
        return entries

    def list_listening_ports(self) -> Union[Set[int], _Unsupported]:
        try:
            conns = psutil.net_connections(kind="inet")
        except (psutil.Error, OSError) as e:
            # macOS 非 root 用户无法读取全局套接字表
            logger.debug("Socket table not readable: %s", e)
            return UNSUPPORTED
        return {c.laddr.port for c in conns if c.status == psutil.CONN_LISTEN and c.laddr}


class WindowsCapabilities(PsutilCapabilities):
    """Windows 实现，额外提供注册表读取。"""

    name = "windows"
    supported = PsutilCapabilities.supported | {Capability.REGISTRY}

    def read_registry_value(self, path: str, name: Optional[str] = None) -> RegistryValue:
        """读取注册表键（及可选的值）。

        Raises:
            ValueError: 路径中的根键无法识别。
            OSError: 除"不存在"以外的注册表访问错误。
        """
        hive_name, _, subkey = path.partition("\\")
        hive_attr = _HIVE_ALIASES.get(hive_name.upper())
        if hive_attr is None:
            raise ValueError(f"Unsupported registry hive in path: {path}")

        import winreg

        try:
            key = winreg.OpenKey(getattr(winreg, hive_attr), subkey)
        except FileNotFoundError:
            return RegistryValue(key_exists=False)

        with key:
            if name is None:
                return RegistryValue(key_exists=True)
            try:
                value, _ = winreg.QueryValueEx(key, name)
            except FileNotFoundError:
                return RegistryValue(key_exists=True, value_exists=False)

        if isinstance(value, (list, tuple)):
            value = ",".join(str(v) for v in value)
        return RegistryValue(key_exists=True, value_exists=True, value=str(value))


def get_capabilities() -> PlatformCapabilities:
    """按当前运行平台选择能力实现。"""
    if sys.platform == "win32":
        return WindowsCapabilities()
    return PsutilCapabilities()
