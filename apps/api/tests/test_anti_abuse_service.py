"""Tests for the rate limit, honeypot and timing gates."""

import base64
import time
from unittest.mock import MagicMock

import pytest

from intake.core.encryption import hash_client_ip
from intake.core.rate_limit import SubmissionRateLimiter
from intake.services.anti_abuse_service import (
    AntiAbuseGuard,
    GuardVerdict,
    decode_form_token,
    fake_reference,
    mint_form_token,
)
from intake.services.audit_service import InMemoryAuditLogger


@pytest.fixture
def audit():
    return InMemoryAuditLogger()


@pytest.fixture
def guard(audit):
    limiter = SubmissionRateLimiter("memory://", max_requests=3, window_seconds=60)
    return AntiAbuseGuard(limiter, audit, min_fill_seconds=5)


def test_form_token_round_trip():
    token = mint_form_token(now=1_700_000_000)

    assert decode_form_token(token) == 1_700_000_000
    assert mint_form_token(now=1_700_000_000) != token


@pytest.mark.parametrize(
    "token",
    [
        None,
        "",
        "%%%",
        base64.b64encode(b"no-separator").decode(),
        base64.b64encode(b"abc_def").decode(),
        12345,
    ],
)
def test_undecodable_tokens(token):
    assert decode_form_token(token) is None


def test_fake_reference_shape():
    reference = fake_reference()

    assert reference.startswith("REF")
    assert len(reference) == 9
    assert reference[3:].isdigit()


def test_clean_submission_is_allowed(guard):
    outcome = guard.check({"vorname": "Anna"}, "203.0.113.7")

    assert outcome.allowed
    assert outcome.verdict is GuardVerdict.ALLOWED


def test_attempt_after_limit_is_rejected_and_audited(guard, audit):
    for _ in range(3):
        assert guard.check({}, "203.0.113.7").allowed

    outcome = guard.check({}, "203.0.113.7")

    assert outcome.verdict is GuardVerdict.RATE_LIMITED
    assert outcome.retry_after and outcome.retry_after > 0
    assert f"{outcome.retry_after} Sekunden" in outcome.message
    event, entity_id, details = audit.events[-1]
    assert event == "form_submit_rate_limited"
    assert entity_id is None
    assert details["ip_hash"] == hash_client_ip("203.0.113.7")
    assert "203.0.113.7" not in str(details)


def test_rate_limit_is_per_client(guard):
    for _ in range(4):
        guard.check({}, "203.0.113.7")

    assert guard.check({}, "198.51.100.1").allowed


def test_rate_limit_window_expires():
    limiter = SubmissionRateLimiter("memory://", max_requests=1, window_seconds=1)
    guard = AntiAbuseGuard(limiter, min_fill_seconds=0)

    assert guard.check({}, "203.0.113.7").allowed
    assert guard.check({}, "203.0.113.7").verdict is GuardVerdict.RATE_LIMITED

    time.sleep(1.1)

    assert guard.check({}, "203.0.113.7").allowed


@pytest.mark.parametrize("field", ["website_url", "email_confirm"])
def test_honeypot_returns_fake_success(guard, audit, field):
    outcome = guard.check({field: "http://spam.example"}, "203.0.113.7")

    assert outcome.verdict is GuardVerdict.HONEYPOT
    assert not outcome.allowed
    assert outcome.message == "Anfrage gesendet."
    assert outcome.reference.startswith("REF")
    assert audit.events == []


def test_honeypot_counts_double_against_the_limit(guard):
    guard.check({"website_url": "x"}, "203.0.113.7")

    assert guard.check({}, "203.0.113.7").allowed
    assert guard.check({}, "203.0.113.7").verdict is GuardVerdict.RATE_LIMITED


def test_empty_honeypot_is_ignored(guard):
    assert guard.check({"website_url": "", "email_confirm": "  "}, "203.0.113.7").allowed


def test_submission_faster_than_minimum_fill_time(guard):
    token = mint_form_token(now=1000)

    outcome = guard.check({"form_token": token}, "203.0.113.7", now=1003)

    assert outcome.verdict is GuardVerdict.TOO_FAST
    assert outcome.retry_after is None


def test_submission_after_minimum_fill_time(guard):
    token = mint_form_token(now=1000)

    assert guard.check({"form_token": token}, "203.0.113.7", now=1005).allowed


@pytest.mark.parametrize("token", [None, "not-base64!"])
def test_missing_or_broken_token_fails_open(guard, token):
    data = {} if token is None else {"form_token": token}

    assert guard.check(data, "203.0.113.7", now=1000).allowed


def test_rate_limit_is_checked_before_honeypot(guard, audit):
    for _ in range(3):
        guard.check({}, "203.0.113.7")

    outcome = guard.check({"website_url": "x"}, "203.0.113.7")

    assert outcome.verdict is GuardVerdict.RATE_LIMITED


def test_rate_limit_holds_when_audit_write_fails(caplog):
    audit = MagicMock()
    audit.log.side_effect = RuntimeError("db down")
    limiter = SubmissionRateLimiter("memory://", max_requests=1, window_seconds=60)
    guard = AntiAbuseGuard(limiter, audit, min_fill_seconds=0)

    assert guard.check({}, "1.2.3.4").allowed
    outcome = guard.check({}, "1.2.3.4")

    assert outcome.verdict is GuardVerdict.RATE_LIMITED
    audit.log.assert_called_once()
    assert "Rate-limit audit event could not be written" in caplog.text
