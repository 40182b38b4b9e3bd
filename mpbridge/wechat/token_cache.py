"""Single-slot access token cache with an expiry safety margin."""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

DEFAULT_SAFETY_MARGIN = 300


@dataclass(frozen=True)
class AccessToken:
    value: str
    expires_at: float


class TokenCache:
    """Holds at most one access token for the process.

    ``set`` takes the ``expires_in`` WeChat returned and shortens it by
    ``safety_margin`` seconds, so a token is never handed out right up to the
    server-side deadline. Refreshes are not deduplicated: two requests that
    both see an empty slot will both fetch, and the last write wins.
    """

    def __init__(
        self,
        safety_margin: int = DEFAULT_SAFETY_MARGIN,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.safety_margin = safety_margin
        self._clock = clock
        self._token: Optional[AccessToken] = None
        self._lock = threading.Lock()

    def get(self) -> Optional[AccessToken]:
        with self._lock:
            token = self._token
            if token is None:
                return None
            if self._clock() >= token.expires_at:
                self._token = None
                return None
            return token

    def set(self, value: str, expires_in: int) -> AccessToken:
        ttl = max(int(expires_in) - self.safety_margin, 0)
        token = AccessToken(value=value, expires_at=self._clock() + ttl)
        with self._lock:
            self._token = token
        return token

    def invalidate(self) -> None:
        with self._lock:
            self._token = None
