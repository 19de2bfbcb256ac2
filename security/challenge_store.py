from dataclasses import dataclass
from datetime import datetime
from threading import Lock
from typing import Optional

from cachetools import TTLCache
from flask import current_app

# Entries outlive the challenge itself so an expired code is reported as
# expired (from expires_at) rather than silently missing.
EVICTION_GRACE_SECONDS = 60


@dataclass
class PendingChallenge:
    pending_id: str
    account_id: int
    code_hash: str
    issued_at: datetime
    expires_at: datetime
    attempts: int = 0


class ChallengeStore:
    """In-flight second-factor challenges keyed by pending id."""

    def __init__(self, maxsize: int = 10000, ttl_seconds: int = 300):
        self._cache: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl_seconds + EVICTION_GRACE_SECONDS)
        self._lock = Lock()

    def put(self, challenge: PendingChallenge) -> None:
        with self._lock:
            self._cache[challenge.pending_id] = challenge

    def get(self, pending_id: str) -> Optional[PendingChallenge]:
        if not pending_id:
            return None
        with self._lock:
            return self._cache.get(pending_id)

    def record_failure(self, pending_id: str) -> int:
        """Atomically bump the attempt counter; returns the new count (0 if gone)."""
        with self._lock:
            challenge = self._cache.get(pending_id)
            if challenge is None:
                return 0
            challenge.attempts += 1
            return challenge.attempts

    def discard(self, pending_id: str) -> Optional[PendingChallenge]:
        with self._lock:
            return self._cache.pop(pending_id, None)

    def discard_for_account(self, account_id: int) -> int:
        with self._lock:
            stale = [key for key, c in self._cache.items() if c.account_id == account_id]
            for key in stale:
                del self._cache[key]
            return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)


def get_challenge_store() -> ChallengeStore:
    return current_app.extensions["challenge_store"]


def init_challenge_store(app) -> ChallengeStore:
    store = ChallengeStore(
        maxsize=app.config.get("OTP_STORE_MAXSIZE", 10000),
        ttl_seconds=app.config.get("OTP_TTL_SECONDS", 300),
    )
    app.extensions["challenge_store"] = store
    return store
