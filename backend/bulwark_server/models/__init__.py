"""
数据模型包 (Data Models Package)

集中导出所有 SQLAlchemy ORM 模型，导入本包即可完成表注册。
"""
from bulwark_server.models.endpoint import Endpoint, EndpointStatus
from bulwark_server.models.check_definition import CheckDefinition
from bulwark_server.models.check_result import CheckResult, ResultStatus
from bulwark_server.models.system_snapshot import SystemSnapshot

__all__ = [
    "Endpoint",
    "EndpointStatus",
    "CheckDefinition",
    "CheckResult",
    "ResultStatus",
    "SystemSnapshot",
]
