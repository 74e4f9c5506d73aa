"""
Bulwark Server - 端点合规检查服务端 (Endpoint Compliance Server)

接收 Agent 注册、心跳与检查结果，下发检查定义，并维护端点在线状态。
"""
__version__ = "0.1.0"
