"""
持久化接口 (Persistence Interface)

对 ORM 模型的读写集中在这里，调用方负责提交或回滚事务。
"""
from bulwark_server.repositories.checks import CheckRepository
from bulwark_server.repositories.endpoints import EndpointRepository
from bulwark_server.repositories.results import ResultRepository
from bulwark_server.repositories.snapshots import SnapshotRepository

__all__ = ["CheckRepository", "EndpointRepository", "ResultRepository", "SnapshotRepository"]
