"""
合规检查执行包。

- params.py: 七种检查类型、结果状态及各类型的参数模型
- executor.py: 检查执行器，按类型分派到处理函数，统一 pass / fail / error / skipped 语义
"""
