"""Execution strategy and retry policy test cases."""
import pytest
from sqlalchemy.exc import DisconnectionError, IntegrityError, OperationalError

from persistence.repository.execution_strategy import ExecutionStrategy, RetryPolicy


def dropped_connection():
    return OperationalError("SELECT 1", {}, Exception("server closed the connection"), connection_invalidated=True)


class TestRetryPolicy:
    """Test retry decisions and delays."""

    def test_transient_faults_are_retried(self):
        """Test invalidated connections and disconnects are retried."""
        policy = RetryPolicy(max_attempts=3)

        assert policy.should_retry(dropped_connection(), 0)
        assert policy.should_retry(DisconnectionError("gone"), 1)

    def test_last_attempt_not_retried(self):
        """Test no retry once attempts are exhausted."""
        policy = RetryPolicy(max_attempts=3)

        assert not policy.should_retry(dropped_connection(), 2)

    def test_non_transient_not_retried(self):
        """Test constraint violations and plain errors are not retried."""
        policy = RetryPolicy(max_attempts=3)

        assert not policy.should_retry(IntegrityError("INSERT", {}, Exception("dup")), 0)
        assert not policy.should_retry(OperationalError("SELECT", {}, Exception("syntax")), 0)
        assert not policy.should_retry(ValueError("bad"), 0)

    def test_extra_retryable_exceptions(self):
        """Test configured exception types are retried."""
        policy = RetryPolicy(max_attempts=2, retryable_exceptions={ConnectionError})

        assert policy.should_retry(ConnectionResetError(), 0)

    def test_exponential_delay_is_capped(self):
        """Test delay grows by the multiplier up to the cap."""
        policy = RetryPolicy(base_delay=1.0, max_delay=5.0, jitter=False)

        assert [policy.calculate_delay(n) for n in range(4)] == [1.0, 2.0, 4.0, 5.0]

    def test_jitter_stays_in_range(self):
        """Test jittered delay stays within half and full delay."""
        policy = RetryPolicy(base_delay=2.0, max_delay=30.0, jitter=True)

        for _ in range(20):
            assert 1.0 <= policy.calculate_delay(0) <= 2.0

    def test_defaults_from_settings(self):
        """Test defaults come from configuration."""
        policy = RetryPolicy.from_settings()

        assert policy.max_attempts == 6
        assert policy.base_delay == 1.0
        assert policy.max_delay == 30.0


class TestExecutionStrategy:
    """Test operation execution with retries."""

    def test_returns_result(self):
        """Test a successful operation runs once."""
        strategy = ExecutionStrategy(RetryPolicy(max_attempts=3), sleep=lambda s: None)

        assert strategy.execute(lambda: 42) == 42

    def test_retries_until_success(self):
        """Test transient faults are retried with backoff sleeps."""
        sleeps = []
        attempts = []

        def operation():
            attempts.append(1)
            if len(attempts) < 3:
                raise dropped_connection()
            return "done"

        strategy = ExecutionStrategy(RetryPolicy(max_attempts=5, base_delay=1.0, jitter=False), sleep=sleeps.append)

        assert strategy.execute(operation) == "done"
        assert len(attempts) == 3
        assert sleeps == [1.0, 2.0]

    def test_raises_after_max_attempts(self):
        """Test the last transient fault propagates."""
        attempts = []

        def operation():
            attempts.append(1)
            raise dropped_connection()

        strategy = ExecutionStrategy(RetryPolicy(max_attempts=3, base_delay=0, jitter=False), sleep=lambda s: None)

        with pytest.raises(OperationalError):
            strategy.execute(operation)
        assert len(attempts) == 3

    def test_non_transient_raises_immediately(self):
        """Test other failures are not retried."""
        attempts = []

        def operation():
            attempts.append(1)
            raise ValueError("bad input")

        strategy = ExecutionStrategy(RetryPolicy(max_attempts=3), sleep=lambda s: None)

        with pytest.raises(ValueError):
            strategy.execute(operation)
        assert len(attempts) == 1
