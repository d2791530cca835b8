"""In-memory throttling of login attempts per client address."""

from __future__ import annotations

import threading
import time
from typing import Callable, Dict, List, Optional

from .config import DEFAULT_LOCKOUT_SECONDS, DEFAULT_MAX_LOGIN_ATTEMPTS


class LoginAttemptTracker:
    """Rolling-window counter of login attempts keyed by client identifier.

    Stale timestamps are only discarded by :meth:`prune`, so callers prune
    before asking :meth:`is_locked`. Recording never evicts; a client may end
    up one attempt over the limit, and the gate blocks from then on.
    """

    def __init__(
        self,
        *,
        max_attempts: int = DEFAULT_MAX_LOGIN_ATTEMPTS,
        lockout_seconds: float = DEFAULT_LOCKOUT_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_attempts <= 0:
            raise ValueError("max_attempts must be greater than zero")
        if lockout_seconds <= 0:
            raise ValueError("lockout_seconds must be greater than zero")
        self._max_attempts = max_attempts
        self._lockout_seconds = lockout_seconds
        self._clock = clock
        self._attempts: Dict[str, List[float]] = {}
        self._lock = threading.Lock()

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    @property
    def lockout_seconds(self) -> float:
        return self._lockout_seconds

    def prune(self, now: Optional[float] = None) -> None:
        """Forget attempts that fell out of the lockout window."""
        current = self._now(now)
        with self._lock:
            self._prune_locked(current)

    def is_locked(self, client_id: str, now: Optional[float] = None) -> bool:
        """Report whether the retained attempts reach the limit.

        Only the retained count matters; ``now`` is accepted so every tracker
        operation shares one call shape. Call :meth:`prune` first.
        """
        with self._lock:
            return len(self._attempts.get(client_id, ())) >= self._max_attempts

    def record_attempt(self, client_id: str, now: Optional[float] = None) -> None:
        current = self._now(now)
        with self._lock:
            self._attempts.setdefault(client_id, []).append(current)

    def check(self, client_id: str, now: Optional[float] = None) -> bool:
        """Prune, then report whether ``client_id`` is currently locked out."""
        current = self._now(now)
        self.prune(current)
        return self.is_locked(client_id, current)

    def acquire(self, client_id: str, now: Optional[float] = None) -> bool:
        """Prune, check and record an attempt for ``client_id`` under one lock.

        Returns ``False`` without recording when the client is locked out.
        """
        current = self._now(now)
        with self._lock:
            self._prune_locked(current)
            stamps = self._attempts.setdefault(client_id, [])
            if len(stamps) >= self._max_attempts:
                return False
            stamps.append(current)
            return True

    def attempts(self, client_id: str) -> int:
        with self._lock:
            return len(self._attempts.get(client_id, ()))

    def reset(self, client_id: Optional[str] = None) -> None:
        with self._lock:
            if client_id is None:
                self._attempts.clear()
            else:
                self._attempts.pop(client_id, None)

    def _prune_locked(self, current: float) -> None:
        for client_id in list(self._attempts):
            retained = [
                stamp
                for stamp in self._attempts[client_id]
                if stamp + self._lockout_seconds > current
            ]
            if retained:
                self._attempts[client_id] = retained
            else:
                del self._attempts[client_id]

    def _now(self, now: Optional[float]) -> float:
        return self._clock() if now is None else now


__all__ = ["LoginAttemptTracker"]
