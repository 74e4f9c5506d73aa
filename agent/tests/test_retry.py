"""重试策略测试。"""
from bulwark_agent.config import RetryConfig
from bulwark_agent.retry import RetryPolicy


class TestRetryPolicy:
    def test_exponential_delays(self):
        policy = RetryPolicy(max_attempts=5, base_delay=1.0, multiplier=2.0, max_delay=30.0)
        assert policy.delays() == [1.0, 2.0, 4.0, 8.0]

    def test_delay_capped(self):
        policy = RetryPolicy(max_attempts=10, base_delay=5.0, multiplier=3.0, max_delay=30.0)
        assert policy.delay(1) == 5.0
        assert policy.delay(2) == 15.0
        assert policy.delay(3) == 30.0
        assert policy.delay(9) == 30.0

    def test_single_attempt_never_sleeps(self):
        assert RetryPolicy(max_attempts=1).delays() == []

    def test_from_config(self):
        policy = RetryPolicy.from_config(RetryConfig(max_attempts=4, base_delay_secs=0.5, max_delay_secs=2.0))
        assert policy.max_attempts == 4
        assert policy.delays() == [0.5, 1.0, 2.0]
