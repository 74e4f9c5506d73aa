"""
Agent 异常定义模块。

检查级异常只影响单个检查的结果状态；传输层异常由调度器捕获，
在下一个周期重试，任何情况下都不会导致 Agent 进程退出。
"""
from typing import Optional


class ConfigError(Exception):
    """配置缺失或取值非法。"""


class CheckExecutionError(Exception):
    """检查无法完成评估（I/O 失败、启动命令失败、参数非法），映射为 error 状态。"""


class PlatformUnsupportedError(Exception):
    """当前平台不具备该检查所需能力，映射为 skipped 状态。"""


class TransportError(Exception):
    """与服务端通信失败（网络错误、超时、重试耗尽）。"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class AgentAuthError(TransportError):
    """服务端拒绝共享密钥（401），重试没有意义。"""


class NotRegisteredError(TransportError):
    """服务端不认识当前 endpoint_id（404），需要重新注册。"""


class RequestRejectedError(TransportError):
    """服务端以其他 4xx 拒绝请求。"""
