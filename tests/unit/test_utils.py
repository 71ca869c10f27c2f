"""
Tests for retry and logging utilities.
"""
import pytest
import requests
from structlog.testing import capture_logs

from flashlever.utils.logger import get_logger, log_operation_event
from flashlever.utils.retry import RetryConfig, retry_with_config

FAST = RetryConfig(max_attempts=3, wait_strategy="fixed", wait_fixed_seconds=0, log_before_sleep=False)


class TestRetry:
    """Tests for retry_with_config."""

    def test_retries_transport_errors(self):
        attempts = []

        @retry_with_config(FAST)
        def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise TimeoutError("slow node")
            return "ok"

        assert flaky() == "ok"
        assert len(attempts) == 3

    def test_gives_up_after_max_attempts(self):
        attempts = []

        @retry_with_config(FAST)
        def down():
            attempts.append(1)
            raise ConnectionError("refused")

        with pytest.raises(ConnectionError):
            down()
        assert len(attempts) == 3

    def test_retries_requests_transport_errors(self):
        attempts = []

        @retry_with_config(FAST)
        def flaky():
            attempts.append(1)
            if len(attempts) < 2:
                raise requests.exceptions.ConnectionError("connection refused")
            return "ok"

        assert flaky() == "ok"
        assert len(attempts) == 2

    def test_does_not_retry_other_errors(self):
        attempts = []

        @retry_with_config(FAST)
        def broken():
            attempts.append(1)
            raise KeyError("bad")

        with pytest.raises(KeyError):
            broken()
        assert len(attempts) == 1


class TestLogging:
    """Tests for structured log helpers."""

    def test_operation_event_shape(self):
        logger = get_logger("test")
        with capture_logs() as logs:
            log_operation_event(logger, "started", "0xabc", "open", flash_loan_amount=5)

        assert logs == [
            {
                "event": "operation_started",
                "operation_id": "0xabc",
                "kind": "open",
                "flash_loan_amount": 5,
                "log_level": "info",
            }
        ]
