"""Tests for base handler functionality."""

from __future__ import annotations

import threading
from unittest.mock import Mock, patch

import kopf
import pytest

from cfssl_issuer.handlers.base import BaseHandler, KeyedLock, Result, apply_result, backoff_delay
from cfssl_issuer.utils.context import get_correlation_id
from cfssl_issuer.utils.errors import SignerSignError


class TestResult:
    """Test cases for the reconcile Result value."""

    def test_done(self):
        result = Result.done()
        assert result.terminal
        assert not result.retry

    def test_requeue(self):
        result = Result.requeue(60.0)
        assert result.requeue_after == 60.0
        assert not result.terminal
        assert not result.retry

    def test_retry_with(self):
        error = SignerSignError("boom")
        result = Result.retry_with(error)
        assert result.retry
        assert result.error is error
        assert not result.terminal

    def test_immutable(self):
        """Test that results cannot be modified after creation."""
        with pytest.raises(AttributeError):
            Result.done().error = ValueError()  # type: ignore[misc]


class TestBackoff:
    """Test cases for the retry delay computation."""

    @pytest.mark.parametrize("retry,expected", [(0, 1.0), (1, 2.0), (3, 8.0), (8, 256.0), (9, 300.0), (50, 300.0)])
    def test_backoff_delay(self, retry, expected):
        assert backoff_delay(retry) == expected

    def test_negative_retry(self):
        assert backoff_delay(-1) == 1.0

    def test_apply_result_without_error(self):
        """Test that successful results do not raise."""
        apply_result(Result.done())
        apply_result(Result.requeue(30.0), retry=4)

    def test_apply_result_with_error(self):
        """Test that errors are handed to kopf as temporary errors with backoff."""
        with pytest.raises(kopf.TemporaryError) as exc_info:
            apply_result(Result.retry_with(SignerSignError("boom")), retry=2)

        assert exc_info.value.delay == 4.0
        assert "boom" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, SignerSignError)


class TestKeyedLock:
    """Test cases for the per-resource lock."""

    def test_lock_released_and_cleaned_up(self):
        locks = KeyedLock()
        with locks.hold("ns/a"):
            assert "ns/a" in locks._locks
        assert locks._locks == {}

    def test_same_key_is_exclusive(self):
        """Test that a second holder waits for the first one."""
        locks = KeyedLock()
        entered = threading.Event()
        release = threading.Event()
        order: list[str] = []

        def first():
            with locks.hold("ns/a"):
                entered.set()
                release.wait(5)
                order.append("first")

        def second():
            entered.wait(5)
            with locks.hold("ns/a"):
                order.append("second")

        t1 = threading.Thread(target=first)
        t2 = threading.Thread(target=second)
        t1.start()
        t2.start()
        entered.wait(5)
        release.set()
        t1.join(5)
        t2.join(5)

        assert order == ["first", "second"]
        assert locks._locks == {}

    def test_different_keys_do_not_block(self):
        locks = KeyedLock()
        with locks.hold("ns/a"):
            with locks.hold("ns/b"):
                assert set(locks._locks) == {"ns/a", "ns/b"}


class TestBaseHandler:
    """Test cases for BaseHandler class."""

    def test_init(self):
        """Test handler initialization."""
        handler = BaseHandler(kind="TestKind")
        assert handler.kind == "TestKind"
        assert handler.logger is not None
        assert handler.reconcile_timeout is None

    def test_record_event_normal(self):
        recorder = Mock()
        handler = BaseHandler(kind="TestKind", recorder=recorder)
        handler.event_reason = "TestReconciler"
        body = {"metadata": {"name": "x"}}

        handler.record_event(body, "all good", warning=False)

        recorder.assert_called_once_with(body, "TestReconciler", "all good", "Normal")

    def test_record_event_warning(self):
        recorder = Mock()
        handler = BaseHandler(kind="TestKind", recorder=recorder)

        handler.record_event({}, "broken", warning=True)

        assert recorder.call_args[0][3] == "Warning"

    @patch("cfssl_issuer.handlers.base.metrics")
    def test_reconcile_with_metrics_success(self, mock_metrics):
        """Test reconcile_with_metrics tracks success."""
        handler = BaseHandler(kind="TestKind")

        result = handler.reconcile_with_metrics("test", "default", Result.done)

        assert result.terminal
        mock_metrics.reconcile_total.labels.assert_called_with(kind="TestKind", result="success")
        mock_metrics.reconcile_duration_seconds.labels.assert_called_with(kind="TestKind")

    @patch("cfssl_issuer.handlers.base.metrics")
    def test_reconcile_with_metrics_retry(self, mock_metrics):
        """Test reconcile_with_metrics counts results carrying an error."""
        handler = BaseHandler(kind="TestKind")

        handler.reconcile_with_metrics("test", "default", lambda: Result.retry_with(SignerSignError("x")))

        mock_metrics.reconcile_total.labels.assert_called_with(kind="TestKind", result="retry")
        mock_metrics.error_total.labels.assert_called_with(kind="TestKind", error_type="SignerSignError")

    @patch("cfssl_issuer.handlers.base.metrics")
    def test_reconcile_with_metrics_exception(self, mock_metrics):
        """Test reconcile_with_metrics tracks and re-raises exceptions."""
        handler = BaseHandler(kind="TestKind")

        def failing():
            raise RuntimeError("Test error")

        with pytest.raises(RuntimeError, match="Test error"):
            handler.reconcile_with_metrics("test", "default", failing)

        mock_metrics.reconcile_total.labels.assert_called_with(kind="TestKind", result="error")
        mock_metrics.error_total.labels.assert_called_with(kind="TestKind", error_type="RuntimeError")

    def test_reconcile_with_metrics_sets_correlation_id(self):
        """Test that a correlation ID is set only for the duration of the reconcile."""
        handler = BaseHandler(kind="TestKind")
        seen = []

        def capture():
            seen.append(get_correlation_id())
            return Result.done()

        handler.reconcile_with_metrics("test", "default", capture)

        assert seen == ["default/test"]
        assert get_correlation_id() is None
