"""API 路由包 (API Routers)"""
