"""
Login rate limiting.

Two fixed-window counters are kept per login attempt, one for the client IP
and one for the target email:

- IP:    10 failed attempts per 15 minutes
- Email:  5 failed attempts per 15 minutes

Counters live in the shared key-value store. If the store is unavailable the
limiter fails open and logs the error.
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Optional

import redis
from fastapi import Depends, Request

from codex.core.kv_store import KeyValueStore, get_kv_store

logger = logging.getLogger(__name__)

LOGIN_WINDOW_SECONDS = 15 * 60
MAX_ATTEMPTS_PER_IP = 10
MAX_ATTEMPTS_PER_EMAIL = 5


@dataclass
class RateLimitStatus:
    limited: bool
    reason: Optional[str] = None  # "ip" or "email"
    retry_after_seconds: int = 0

    @property
    def time_left_minutes(self) -> int:
        return math.ceil(self.retry_after_seconds / 60)

    @property
    def message(self) -> str:
        if self.reason == "ip":
            return f"Too many login attempts from this location. Please try again in {self.time_left_minutes} minutes."
        return f"Too many login attempts for this account. Please try again in {self.time_left_minutes} minutes."


def ip_key(ip_address: str) -> str:
    return f"login:ip:{ip_address}"


def email_key(email: str) -> str:
    return f"login:email:{email}"


class LoginRateLimiter:
    """Fixed-window login throttle keyed by client IP and by email"""

    def __init__(
        self,
        store: KeyValueStore,
        clock: Callable[[], float] = time.time,
        window_seconds: int = LOGIN_WINDOW_SECONDS,
        max_per_ip: int = MAX_ATTEMPTS_PER_IP,
        max_per_email: int = MAX_ATTEMPTS_PER_EMAIL,
    ):
        self.store = store
        self.clock = clock
        self.window_seconds = window_seconds
        self.max_per_ip = max_per_ip
        self.max_per_email = max_per_email

    def _check_key(self, key: str, limit: int, now: float) -> Optional[int]:
        """Return seconds until the window closes if key is over its limit"""
        counter = self.store.get(key)
        if not counter:
            return None

        count = int(counter.get("count", 0))
        window_start = float(counter.get("window_start", now))
        window_end = window_start + self.window_seconds

        # Window elapsed: the counter no longer applies
        if now >= window_end:
            return None
        if count >= limit:
            return max(1, math.ceil(window_end - now))
        return None

    def check(self, ip_address: str, email: str) -> RateLimitStatus:
        now = self.clock()
        try:
            retry_after = self._check_key(ip_key(ip_address), self.max_per_ip, now)
            if retry_after is not None:
                logger.warning(f"Login rate limit tripped for IP {ip_address}")
                return RateLimitStatus(limited=True, reason="ip", retry_after_seconds=retry_after)

            retry_after = self._check_key(email_key(email), self.max_per_email, now)
            if retry_after is not None:
                logger.warning(f"Login rate limit tripped for email {email}")
                return RateLimitStatus(limited=True, reason="email", retry_after_seconds=retry_after)
        except redis.RedisError as e:
            logger.error(f"Rate limiter store error during check (failing open): {e}")

        return RateLimitStatus(limited=False)

    def _increment(self, key: str, now: float) -> None:
        count, window_start = self.store.increment(key, now, self.window_seconds)
        if now >= window_start + self.window_seconds:
            # Stale window survived past its TTL; start a new one
            self.store.put(key, {"count": 1, "window_start": now}, self.window_seconds)

    def record_failure(self, ip_address: str, email: str) -> None:
        now = self.clock()
        try:
            self._increment(ip_key(ip_address), now)
            self._increment(email_key(email), now)
        except redis.RedisError as e:
            logger.error(f"Rate limiter store error recording failure (failing open): {e}")

    def reset(self, ip_address: str, email: str) -> None:
        now = self.clock()
        fresh = {"count": 0, "window_start": now}
        try:
            self.store.put(ip_key(ip_address), fresh, self.window_seconds)
            self.store.put(email_key(email), fresh, self.window_seconds)
        except redis.RedisError as e:
            logger.error(f"Rate limiter store error during reset: {e}")


def get_login_rate_limiter(store: KeyValueStore = Depends(get_kv_store)) -> LoginRateLimiter:
    """FastAPI dependency building the limiter over the shared store"""
    return LoginRateLimiter(store)


def get_client_ip(request: Request) -> str:
    """
    Extract the client's IP address from the request.

    Honours X-Forwarded-For when running behind a proxy/load balancer.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # X-Forwarded-For can contain multiple IPs, take the first (client IP)
        return forwarded_for.split(",")[0].strip()

    return request.client.host if request.client else "unknown"
