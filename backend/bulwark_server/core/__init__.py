"""
核心模块包 (Core Module Package)

配置管理、数据库连接、异常定义、Agent 共享密钥认证和通用依赖项。

Configuration, database connections, exception types, agent shared-secret
authentication and common dependencies.
"""
