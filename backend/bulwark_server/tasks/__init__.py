"""后台任务包 (Background Tasks)"""
