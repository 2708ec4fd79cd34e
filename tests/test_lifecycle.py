"""Unit tests for session renewal and expiry policy."""

from datetime import datetime, timedelta, timezone

import pytest

from docauth.service.lifecycle import (
    DEFAULT_SESSION_MAX_AGE,
    SessionPolicy,
    as_utc,
    is_expired,
    verification_expiry,
)

NOW = datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)
THIRTY_DAYS = 30 * 24 * 60 * 60
ONE_HOUR = 60 * 60


class TestSessionExpiry:
    def test_default_max_age_is_thirty_days(self):
        assert SessionPolicy().max_age == DEFAULT_SESSION_MAX_AGE == THIRTY_DAYS

    def test_expiry_is_now_plus_max_age(self):
        policy = SessionPolicy(max_age=3600)

        assert policy.session_expiry(NOW) == NOW + timedelta(seconds=3600)

    def test_zero_max_age_never_expires(self):
        assert SessionPolicy(max_age=0).session_expiry(NOW) is None


class TestShouldRenew:
    """Renewal is due once update_age has passed since the last renewal point."""

    def test_not_renewed_inside_update_window(self):
        policy = SessionPolicy(max_age=THIRTY_DAYS, update_age=ONE_HOUR)
        # Renewed ten minutes ago
        expires = NOW + timedelta(seconds=THIRTY_DAYS) - timedelta(minutes=10)

        assert policy.should_renew(expires, NOW) is False

    def test_renewed_after_update_window(self):
        policy = SessionPolicy(max_age=THIRTY_DAYS, update_age=ONE_HOUR)
        # Renewed two hours ago
        expires = NOW + timedelta(seconds=THIRTY_DAYS) - timedelta(hours=2)

        assert policy.should_renew(expires, NOW) is True

    def test_due_date_boundary_is_inclusive(self):
        policy = SessionPolicy(max_age=THIRTY_DAYS, update_age=ONE_HOUR)
        expires = NOW + timedelta(seconds=THIRTY_DAYS - ONE_HOUR)

        assert policy.renewal_due_at(expires) == NOW
        assert policy.should_renew(expires, NOW) is True

    def test_zero_update_age_renews_every_time(self):
        policy = SessionPolicy(max_age=THIRTY_DAYS, update_age=0)
        expires = NOW + timedelta(seconds=THIRTY_DAYS)

        assert policy.should_renew(expires, NOW) is True

    def test_missing_expiry_is_not_renewed(self):
        assert SessionPolicy().should_renew(None, NOW) is False

    def test_zero_max_age_is_not_renewed(self):
        policy = SessionPolicy(max_age=0)

        assert policy.should_renew(NOW + timedelta(days=1), NOW) is False

    def test_fractional_update_age_is_accepted(self):
        policy = SessionPolicy(max_age=THIRTY_DAYS, update_age=1800.0)
        expires = NOW + timedelta(seconds=THIRTY_DAYS) - timedelta(hours=1)

        assert policy.has_valid_update_age is True
        assert policy.should_renew(expires, NOW) is True

    @pytest.mark.parametrize("update_age", [-1, -0.5, True, "3600"])
    def test_invalid_update_age_is_not_renewed(self, update_age):
        policy = SessionPolicy(max_age=THIRTY_DAYS, update_age=update_age)

        assert policy.should_renew(NOW, NOW) is False

    def test_force_bypasses_throttling(self):
        policy = SessionPolicy(max_age=THIRTY_DAYS, update_age=ONE_HOUR)
        expires = NOW + timedelta(seconds=THIRTY_DAYS)

        assert policy.should_renew(expires, NOW, force=True) is True
        assert policy.should_renew(None, NOW, force=True) is True


class TestExpiryChecks:
    def test_past_expiry_is_expired(self):
        assert is_expired(NOW - timedelta(seconds=1), NOW) is True

    def test_exact_expiry_is_still_valid(self):
        assert is_expired(NOW, NOW) is False

    def test_missing_expiry_never_expires(self):
        assert is_expired(None, NOW) is False

    def test_naive_datetimes_are_treated_as_utc(self):
        naive = datetime(2030, 1, 1, 11, 0)

        assert as_utc(naive) == datetime(2030, 1, 1, 11, 0, tzinfo=timezone.utc)
        assert is_expired(naive, NOW) is True

    def test_verification_expiry(self):
        assert verification_expiry(90, NOW) == NOW + timedelta(seconds=90)
        assert verification_expiry(None, NOW) is None
        assert verification_expiry(0, NOW) is None
