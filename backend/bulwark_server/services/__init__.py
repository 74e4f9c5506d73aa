"""业务服务包 (Business Services)"""
