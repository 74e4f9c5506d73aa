"""
系统信息采集模块。

使用 psutil 采集注册所需的静态系统信息，以及随心跳上报的系统快照
（CPU、内存、磁盘、进程、监听端口）。快照内容对服务端而言是不透明的。
"""
import logging
import platform
import socket
from typing import List, Optional

import psutil

from bulwark_agent import __version__
from bulwark_agent.capabilities import UNSUPPORTED, PlatformCapabilities, get_capabilities
from bulwark_agent.models import ProcessInfo, RegisterRequest, SnapshotPayload

logger = logging.getLogger(__name__)

MAX_SNAPSHOT_PROCESSES = 50  # 快照中按内存占用保留的进程数


def get_ip_addresses() -> List[str]:
    """列出本机非回环网卡上的 IPv4/IPv6 地址。"""
    addresses = []
    for _iface, addrs in psutil.net_if_addrs().items():
        for addr in addrs:
            if addr.family not in (socket.AF_INET, socket.AF_INET6):
                continue
            ip = addr.address.split("%", 1)[0]  # 去掉 IPv6 scope id
            if ip.startswith("127.") or ip == "::1" or ip.startswith("fe80:"):
                continue
            if ip not in addresses:
                addresses.append(ip)
    return addresses


class SystemCollector:
    """静态系统信息与运行快照采集器。"""

    def __init__(
        self,
        hostname_override: Optional[str] = None,
        capabilities: Optional[PlatformCapabilities] = None,
        cpu_interval: Optional[float] = 1.0,
    ):
        self.hostname_override = hostname_override
        self.capabilities = capabilities or get_capabilities()
        self.cpu_interval = cpu_interval

    def hostname(self) -> str:
        return self.hostname_override or socket.gethostname()

    def system_info(self) -> RegisterRequest:
        """采集注册请求所需的主机信息。"""
        uname = platform.uname()
        try:
            ips = get_ip_addresses()
        except OSError as e:
            logger.warning("Failed to enumerate network interfaces: %s", e)
            ips = []
        return RegisterRequest(
            hostname=self.hostname(),
            os=uname.system,
            os_version=uname.release,
            agent_version=__version__,
            ip_addresses=ips,
        )

    def _top_processes(self) -> List[ProcessInfo]:
        procs = []
        for proc in psutil.process_iter(["pid", "name", "cpu_percent", "memory_info"]):
            info = proc.info
            mem = info.get("memory_info")
            procs.append(ProcessInfo(
                pid=info["pid"],
                name=info.get("name") or "",
                cpu_usage=info.get("cpu_percent") or 0.0,
                memory_bytes=mem.rss if mem else 0,
            ))
        procs.sort(key=lambda p: p.memory_bytes, reverse=True)
        return procs[:MAX_SNAPSHOT_PROCESSES]

    def snapshot(self) -> SnapshotPayload:
        """采集当前系统快照（阻塞调用，cpu_interval 秒用于计算 CPU 使用率）。"""
        cpu = psutil.cpu_percent(interval=self.cpu_interval)
        mem = psutil.virtual_memory()

        # 磁盘使用率取根分区
        try:
            disk = psutil.disk_usage("/")
            disk_total, disk_used = disk.total, disk.used
        except OSError:
            disk_total = disk_used = 0

        ports = self.capabilities.list_listening_ports()
        open_ports = [] if ports is UNSUPPORTED else sorted(ports)

        return SnapshotPayload(
            cpu_usage=round(cpu, 1),
            memory_total=mem.total,
            memory_used=mem.used,
            disk_total=disk_total,
            disk_used=disk_used,
            processes=self._top_processes(),
            open_ports=open_ports,
        )
