from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from tradebook.config import AppConfig
from tradebook.registry.retry import RetryPolicy


class TestRetryPolicy:
    def test_defaults(self) -> None:
        policy = RetryPolicy()
        assert policy.max_attempts == 5
        assert policy.base_delay == pytest.approx(0.1)
        assert policy.jitter == pytest.approx(0.1)

    def test_delay_doubles_per_attempt_without_jitter(self) -> None:
        policy = RetryPolicy(rand=lambda: 0.0)
        assert [policy.delay(n) for n in (1, 2, 3, 4)] == pytest.approx([0.1, 0.2, 0.4, 0.8])

    def test_jitter_is_bounded(self) -> None:
        policy = RetryPolicy(rand=lambda: 0.999)
        assert 0.1 <= policy.delay(1) < 0.2

    def test_scale_stretches_base_and_jitter(self) -> None:
        policy = RetryPolicy(rand=lambda: 0.5)
        # 200 ms base doubling, jitter up to 200 ms
        assert policy.delay(2, scale=2.0) == pytest.approx(0.4 + 0.1)

    def test_wait_sleeps_for_delay(self) -> None:
        sleep = MagicMock()
        policy = RetryPolicy(sleep=sleep, rand=lambda: 0.0)
        waited = policy.wait(3)
        sleep.assert_called_once_with(waited)
        assert waited == pytest.approx(0.4)

    def test_from_config(self) -> None:
        cfg = AppConfig(db_dsn="", create_max_attempts=3, retry_base_delay_ms=50, retry_jitter_ms=20)
        policy = RetryPolicy.from_config(cfg)
        assert policy.max_attempts == 3
        assert policy.base_delay == pytest.approx(0.05)
        assert policy.jitter == pytest.approx(0.02)
