"""Expiry and renewal policy for sessions and verification requests.

Everything here is pure: the caller passes ``now`` so the adapter and the
tests share one clock.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

DEFAULT_SESSION_MAX_AGE = 30 * 24 * 60 * 60


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_expired(expires: Optional[datetime], now: datetime) -> bool:
    """A record without ``expires`` never expires."""

    return expires is not None and as_utc(now) > as_utc(expires)


def verification_expiry(max_age: Optional[int], now: datetime) -> Optional[datetime]:
    if not max_age:
        return None
    return as_utc(now) + timedelta(seconds=max_age)


@dataclass(frozen=True)
class SessionPolicy:
    """Sliding-expiration policy, fixed when the adapter is built.

    ``max_age`` is the session lifetime in seconds (0 disables expiry).
    ``update_age`` throttles renewals: an expiry is pushed forward only once
    ``update_age`` seconds have passed since the last renewal point.
    """

    max_age: int = DEFAULT_SESSION_MAX_AGE
    update_age: Union[int, float] = 0

    @property
    def has_valid_update_age(self) -> bool:
        age = self.update_age
        return isinstance(age, (int, float)) and not isinstance(age, bool) and age >= 0

    def session_expiry(self, now: datetime) -> Optional[datetime]:
        if not self.max_age:
            return None
        return as_utc(now) + timedelta(seconds=self.max_age)

    def renewal_due_at(self, expires: datetime) -> datetime:
        # (expiry - max_age) is when the session was last renewed
        last_renewed = as_utc(expires) - timedelta(seconds=self.max_age)
        return last_renewed + timedelta(seconds=self.update_age or 0)

    def should_renew(
        self, expires: Optional[datetime], now: datetime, *, force: bool = False
    ) -> bool:
        if force:
            return True
        if not self.max_age or not self.has_valid_update_age or expires is None:
            return False
        return as_utc(now) >= self.renewal_due_at(expires)


__all__ = [
    "DEFAULT_SESSION_MAX_AGE",
    "SessionPolicy",
    "as_utc",
    "is_expired",
    "utc_now",
    "verification_expiry",
]
