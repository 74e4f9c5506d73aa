"""Bulwark Agent - 端点合规检查代理。"""
__version__ = "0.1.0"
