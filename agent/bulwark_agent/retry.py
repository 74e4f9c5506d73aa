"""
重试策略。

指数退避：第 n 次重试前等待 min(base_delay * multiplier ** (n - 1), max_delay) 秒。
sleep 函数可注入，测试中使用假时钟即可验证退避序列而无需真实等待。
"""
from dataclasses import dataclass
from typing import Awaitable, Callable, List

from bulwark_agent.config import RetryConfig

SleepFunc = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 30.0

    @classmethod
    def from_config(cls, cfg: RetryConfig) -> "RetryPolicy":
        return cls(
            max_attempts=cfg.max_attempts,
            base_delay=cfg.base_delay_secs,
            max_delay=cfg.max_delay_secs,
        )

    def delay(self, attempt: int) -> float:
        """第 attempt 次失败之后的等待时间（attempt 从 1 开始）。"""
        return min(self.base_delay * self.multiplier ** (attempt - 1), self.max_delay)

    def delays(self) -> List[float]:
        return [self.delay(n) for n in range(1, self.max_attempts)]
