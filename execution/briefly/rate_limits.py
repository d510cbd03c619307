"""
Rate Limiting for Briefly CoPilot

Two layers:

- ActionRateLimiter: per-user and per-organization limits on expensive
  actions (vectorizing, chat queries, drafting), counted in the database
  through the ``check_rate_limit`` / ``check_org_rate_limit`` functions.
- RequestRateLimiter: an in-memory sliding window per client key that
  protects every mutating or AI-backed endpoint.
"""

import os
import time
import logging
import threading
from collections import defaultdict
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitPolicy:
    """Limit for one action within a rolling window."""
    limit: int
    window_minutes: int
    scope: str = "user"  # "user" or "organization"
    action_type: Optional[str] = None  # Counter name in the database; defaults to the policy key
    message: str = "Rate limit exceeded. Please try again later."


RATE_LIMIT_POLICIES = {
    "vectorize": RateLimitPolicy(
        limit=5,
        window_minutes=60,
        message="Rate limit exceeded. You can vectorize 5 documents per hour. Please try again later.",
    ),
    "query": RateLimitPolicy(
        limit=20,
        window_minutes=60,
        message="Rate limit exceeded. You can send 20 queries per hour. Please upgrade for higher limits.",
    ),
    "draft_document": RateLimitPolicy(
        limit=20,
        window_minutes=60,
        message="Personal rate limit exceeded (20/hour). Please try again later.",
    ),
    "draft_document_org": RateLimitPolicy(
        limit=500,
        window_minutes=1440,
        scope="organization",
        action_type="draft_document",
        message="Organization rate limit exceeded (500/day). Please contact your admin.",
    ),
}


class RateLimitExceededError(Exception):
    """Raised when a rate limit is exceeded."""

    def __init__(self, message: str, action: str, limit: int, window_minutes: int):
        super().__init__(message)
        self.action = action
        self.limit = limit
        self.window_minutes = window_minutes


class ActionRateLimiter:
    """
    Enforces database-backed limits on expensive actions.

    Usage:
        limiter = ActionRateLimiter(store)
        limiter.enforce("query", user_id)
        limiter.enforce("draft_document_org", user_id, organization_id=org_id)
    """

    def __init__(self, store=None, policies: Optional[dict] = None):
        """
        Args:
            store: VectorStore exposing check_rate_limit / check_org_rate_limit
            policies: Optional override of RATE_LIMIT_POLICIES
        """
        self.store = store
        self.policies = policies or RATE_LIMIT_POLICIES

    def get_policy(self, action: str) -> RateLimitPolicy:
        if action not in self.policies:
            raise KeyError(f"No rate limit policy for action '{action}'")
        return self.policies[action]

    def is_allowed(self, action: str, user_id: str, organization_id: Optional[str] = None) -> bool:
        """
        Check (and count) an action against its policy.

        A failing limiter check denies the action.
        """
        policy = self.get_policy(action)
        action_type = policy.action_type or action

        try:
            if policy.scope == "organization":
                if not organization_id:
                    logger.warning(f"Organization limit '{action}' checked without an organization")
                    return False
                return bool(self.store.check_org_rate_limit(
                    organization_id, action_type, policy.limit, policy.window_minutes
                ))
            return bool(self.store.check_rate_limit(
                user_id, action_type, policy.limit, policy.window_minutes
            ))
        except Exception as e:
            logger.error(f"Rate limit check failed for {action}: {e}")
            return False

    def enforce(self, action: str, user_id: str, organization_id: Optional[str] = None) -> None:
        """
        Raise RateLimitExceededError when the action is not allowed.

        Raises:
            RateLimitExceededError: If the limit is reached or the check failed
        """
        if self.is_allowed(action, user_id, organization_id):
            return

        policy = self.get_policy(action)
        subject = organization_id if policy.scope == "organization" else user_id
        logger.info(f"Rate limit exceeded for {action} ({policy.scope} {subject})")
        raise RateLimitExceededError(
            policy.message,
            action=action,
            limit=policy.limit,
            window_minutes=policy.window_minutes,
        )


class RequestRateLimiter:
    """Simple in-memory rate limiter using a sliding window."""

    def __init__(self, max_requests: int = 60, window_seconds: int = 60):
        self._max_requests = max_requests
        self._window = window_seconds
        self._requests: dict[str, list[float]] = defaultdict(list)
        self._lock = threading.Lock()

    def is_allowed(self, key: str, now: Optional[float] = None) -> bool:
        """Check if request is allowed for the given key."""
        now = time.time() if now is None else now
        window_start = now - self._window

        with self._lock:
            # Clean old entries
            self._requests[key] = [t for t in self._requests[key] if t > window_start]

            if len(self._requests[key]) >= self._max_requests:
                return False

            self._requests[key].append(now)
            return True

    def reset(self) -> None:
        with self._lock:
            self._requests.clear()


# Global instances for reuse
_request_limiter: Optional[RequestRateLimiter] = None


def get_request_rate_limiter() -> RequestRateLimiter:
    """Get or create the global request limiter (RATE_LIMIT_RPM per minute)."""
    global _request_limiter
    if _request_limiter is None:
        _request_limiter = RequestRateLimiter(
            max_requests=int(os.getenv("RATE_LIMIT_RPM", "60")),
            window_seconds=60,
        )
    return _request_limiter
