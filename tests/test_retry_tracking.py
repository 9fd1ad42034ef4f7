"""Tests for retry accounting and outcome classification."""

import asyncio

import httpx
import pytest

from fetch_throttler.retries import (
    RetryReason,
    RetryTracker,
    classify_outcome,
    get_retry_tracker,
    retry_tracking_context,
)


def _request() -> httpx.Request:
    return httpx.Request("GET", "https://example.com")


class TestRetryTracker:
    def test_counts_by_reason_and_pool(self):
        tracker = RetryTracker()
        tracker.record_retry(RetryReason.SERVER_ERROR, "api.example.com")
        tracker.record_retry(RetryReason.SERVER_ERROR, "api.example.com")
        tracker.record_retry(RetryReason.TIMEOUT, "global")

        assert tracker.total_retries == 3
        assert tracker.by_reason[RetryReason.SERVER_ERROR] == 2
        assert tracker.by_pool == {"api.example.com": 2, "global": 1}
        assert tracker.last_reason is RetryReason.TIMEOUT

    def test_unnamed_pool_is_not_broken_out(self):
        tracker = RetryTracker()
        tracker.record_retry(RetryReason.FORCED)

        assert tracker.total_retries == 1
        assert not tracker.by_pool

    def test_summary_is_json_ready(self):
        tracker = RetryTracker()
        tracker.record_retry(RetryReason.RATE_LIMIT, "global")
        tracker.record_exhausted()

        assert tracker.to_dict() == {
            "total_retries": 1,
            "exhausted": 1,
            "by_reason": {"rate_limit": 1},
            "by_pool": {"global": 1},
        }


class TestRetryTrackingContext:
    def test_unbound_outside_any_block(self):
        assert get_retry_tracker() is None

    def test_binds_for_the_duration_of_the_block(self):
        with retry_tracking_context() as tracker:
            assert get_retry_tracker() is tracker
            with retry_tracking_context() as inner:
                assert get_retry_tracker() is inner
            assert get_retry_tracker() is tracker
        assert get_retry_tracker() is None

    def test_existing_tracker_keeps_accumulating(self):
        shared = RetryTracker()
        scope = retry_tracking_context(shared)

        for _ in range(2):
            with scope as tracker:
                tracker.record_exhausted()

        assert shared.exhausted == 2

    def test_async_blocks_and_separate_tasks(self):
        async def issue() -> object:
            async with retry_tracking_context() as tracker:
                await asyncio.sleep(0)
                assert get_retry_tracker() is tracker
                return tracker

        async def main():
            first, second = await asyncio.gather(issue(), issue())
            return first, second, get_retry_tracker()

        first, second, after = asyncio.run(main())
        assert first is not second
        assert after is None


class TestClassifyOutcome:
    @pytest.mark.parametrize(
        "exc, reason",
        [
            (httpx.ReadTimeout("slow", request=_request()), RetryReason.TIMEOUT),
            (httpx.ConnectError("refused", request=_request()), RetryReason.CONNECTION_ERROR),
            (ValueError("boom"), RetryReason.UNKNOWN),
        ],
    )
    def test_exceptions(self, exc, reason):
        assert classify_outcome(exc, False) is reason

    def test_status_error_uses_its_response(self):
        response = httpx.Response(429, request=_request())
        exc = httpx.HTTPStatusError("limited", request=_request(), response=response)

        assert classify_outcome(exc, False) is RetryReason.RATE_LIMIT

    @pytest.mark.parametrize(
        "status, reason",
        [
            (429, RetryReason.RATE_LIMIT),
            (502, RetryReason.SERVER_ERROR),
            (404, RetryReason.CLIENT_ERROR),
            (302, RetryReason.UNKNOWN),
        ],
    )
    def test_results_by_status(self, status, reason):
        assert classify_outcome(httpx.Response(status), True) is reason

    def test_retry_of_a_success_was_forced(self):
        assert classify_outcome(httpx.Response(200), True, non_success=False) is RetryReason.FORCED
