from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Hashable, Optional


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MoveToken:
    key: Hashable
    expires_at: float


class MoveGuard:
    """Single-slot lock for class moves.

    While a token is live every further request is dropped, whether it
    repeats the held key or not. Tokens lapse on their own after
    ``hold_seconds`` or can be released early by their holder.
    """

    def __init__(self, hold_seconds: float = 0.2, clock: Callable[[], float] = time.monotonic) -> None:
        self.hold_seconds = hold_seconds
        self._clock = clock
        self._token: Optional[MoveToken] = None

    @property
    def held(self) -> Optional[MoveToken]:
        if self._token is not None and self._clock() >= self._token.expires_at:
            self._token = None
        return self._token

    def acquire(self, key: Hashable) -> Optional[MoveToken]:
        current = self.held
        if current is not None:
            logger.debug("Dropping move %s while %s is in flight", key, current.key)
            return None
        self._token = MoveToken(key=key, expires_at=self._clock() + self.hold_seconds)
        return self._token

    def release(self, token: MoveToken) -> None:
        if self._token == token:
            self._token = None
