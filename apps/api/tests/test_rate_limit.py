"""Tests for the submission rate limiter counters."""

import time

from intake.core import rate_limit
from intake.core.rate_limit import SubmissionRateLimiter


def test_allows_up_to_limit_then_blocks():
    limiter = SubmissionRateLimiter("memory://", max_requests=3, window_seconds=60)

    results = [limiter.attempt("form_submit", "client-a") for _ in range(4)]

    assert [r.allowed for r in results] == [True, True, True, False]
    assert results[0].current == 1
    assert results[2].current == 3
    assert results[3].limit == 3
    assert 1 <= results[3].retry_after <= 60


def test_clients_and_buckets_are_counted_separately():
    limiter = SubmissionRateLimiter("memory://", max_requests=1, window_seconds=60)

    assert limiter.attempt("form_submit", "client-a").allowed
    assert limiter.attempt("form_submit", "client-b").allowed
    assert limiter.attempt("other", "client-a").allowed
    assert not limiter.attempt("form_submit", "client-a").allowed


def test_increment_consumes_quota():
    limiter = SubmissionRateLimiter("memory://", max_requests=2, window_seconds=60)

    limiter.increment("form_submit", "client-a")
    limiter.increment("form_submit", "client-a")

    assert not limiter.attempt("form_submit", "client-a").allowed


def test_window_expiry_allows_again():
    limiter = SubmissionRateLimiter("memory://", max_requests=1, window_seconds=1)

    assert limiter.attempt("form_submit", "client-a").allowed
    assert not limiter.attempt("form_submit", "client-a").allowed

    time.sleep(1.1)

    assert limiter.attempt("form_submit", "client-a").allowed


def test_reset_clears_counters():
    limiter = SubmissionRateLimiter("memory://", max_requests=1, window_seconds=60)
    limiter.attempt("form_submit", "client-a")

    limiter.reset()

    assert limiter.attempt("form_submit", "client-a").allowed


def test_storage_uri_uses_redis_only_when_reachable(monkeypatch):
    monkeypatch.setattr(rate_limit, "IS_TESTING", False)
    monkeypatch.setattr(rate_limit, "get_rate_limit_storage_uri", lambda: "redis://cache:6379/0")

    monkeypatch.setattr(rate_limit, "redis_available", lambda: True)
    assert rate_limit._resolve_storage_uri() == "redis://cache:6379/0"

    monkeypatch.setattr(rate_limit, "redis_available", lambda: False)
    assert rate_limit._resolve_storage_uri() == "memory://"


def test_storage_uri_is_memory_without_redis(monkeypatch):
    monkeypatch.setattr(rate_limit, "IS_TESTING", False)
    monkeypatch.setattr(rate_limit, "get_rate_limit_storage_uri", lambda: "memory://")

    assert rate_limit._resolve_storage_uri() == "memory://"
