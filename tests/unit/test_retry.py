"""Tests for retry budgets and bounded calls."""
import time

import pytest

from socialflow.errors import PermanentPlatformError, RetryExhaustedError, TransientPlatformError
from socialflow.utils import CallTimeoutError, RetryPolicy, call_with_timeout, is_transient_exc, remaining, retry_call


class TestRetryPolicy:
    def test_delay_doubles_until_cap(self):
        policy = RetryPolicy(max_attempts=6, base_delay=1.0, max_delay=5.0)

        assert [policy.delay_for(i) for i in range(1, 6)] == [1.0, 2.0, 4.0, 5.0, 5.0]


class TestIsTransient:
    def test_taxonomy_errors(self):
        assert is_transient_exc(TransientPlatformError("rate limited"))
        assert not is_transient_exc(PermanentPlatformError("denied"))

    def test_network_errors(self):
        assert is_transient_exc(ConnectionResetError("reset"))
        assert is_transient_exc(TimeoutError("slow"))

    def test_other_errors(self):
        assert not is_transient_exc(ValueError("bad value"))


class TestRetryCall:
    def test_first_attempt_succeeds(self):
        calls = []

        result = retry_call(lambda i: calls.append(i) or "ok", RetryPolicy(), sleep=lambda s: None)

        assert result == "ok"
        assert calls == [1]

    def test_transient_then_success(self):
        slept = []

        def fn(attempt):
            if attempt < 3:
                raise TransientPlatformError("busy")
            return attempt

        result = retry_call(fn, RetryPolicy(max_attempts=4, base_delay=0.5), sleep=slept.append)

        assert result == 3
        assert slept == [0.5, 1.0]

    def test_permanent_raised_immediately(self):
        calls = []

        def fn(attempt):
            calls.append(attempt)
            raise PermanentPlatformError("denied")

        with pytest.raises(PermanentPlatformError):
            retry_call(fn, RetryPolicy(max_attempts=5), sleep=lambda s: None)

        assert calls == [1]

    def test_exhausted(self):
        def fn(attempt):
            raise TransientPlatformError("busy", status_code=503)

        with pytest.raises(RetryExhaustedError) as exc_info:
            retry_call(fn, RetryPolicy(max_attempts=3), sleep=lambda s: None)

        assert exc_info.value.attempts == 3
        assert exc_info.value.status_code == 503
        assert isinstance(exc_info.value.last_error, TransientPlatformError)

    def test_deadline_stops_retries_early(self):
        calls = []

        def fn(attempt):
            calls.append(attempt)
            raise TransientPlatformError("busy")

        deadline = time.monotonic() + 0.5
        with pytest.raises(RetryExhaustedError) as exc_info:
            retry_call(fn, RetryPolicy(max_attempts=5, base_delay=10.0), sleep=lambda s: None, deadline=deadline)

        assert calls == [1]
        assert exc_info.value.attempts == 1


class TestCallWithTimeout:
    def test_returns_result(self):
        assert call_with_timeout(lambda a, b=0: a + b, 1.0, 2, b=3) == 5

    def test_reraises_exception(self):
        def boom():
            raise ValueError("boom")

        with pytest.raises(ValueError, match="boom"):
            call_with_timeout(boom, 1.0)

    def test_times_out(self):
        with pytest.raises(CallTimeoutError) as exc_info:
            call_with_timeout(time.sleep, 0.05, 1.0, label="generate")

        assert exc_info.value.timeout == 0.05
        assert "generate timed out" in str(exc_info.value)


class TestRemaining:
    def test_no_deadline_returns_cap(self):
        assert remaining(None, 7.0) == 7.0

    def test_past_deadline_is_zero(self):
        assert remaining(time.monotonic() - 1, 7.0) == 0.0

    def test_capped(self):
        assert remaining(time.monotonic() + 100, 7.0) == 7.0
