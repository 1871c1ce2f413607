"""In-memory session store for tests and single-process deployments."""

from __future__ import annotations

import time
from datetime import timedelta
from typing import Callable, Optional

from core.state import SessionState


class InMemoryStateStore:
    """SessionStorePort keeping (state, expires_at) pairs in a dict."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._states: dict[int, tuple[SessionState, float]] = {}

    def get(self, user_id: int) -> Optional[SessionState]:
        entry = self._states.get(user_id)
        if entry is None:
            return None
        state, expires_at = entry
        if expires_at <= self._clock():
            self._states.pop(user_id, None)
            return None
        return state

    def set(self, user_id: int, state: SessionState, ttl: timedelta) -> None:
        self._states[user_id] = (state, self._clock() + ttl.total_seconds())

    def clear(self, user_id: int) -> None:
        self._states.pop(user_id, None)
