"""Client-side lock handle."""

from __future__ import annotations

import base64
import secrets
import time
from dataclasses import dataclass, field
from typing import Optional


TOKEN_BYTES = 32


def generate_token() -> str:
    return base64.b64encode(secrets.token_bytes(TOKEN_BYTES)).decode("ascii")


@dataclass(slots=True, eq=False)
class Key:
    """Resource name plus the owner token and lifetime budget of one lock attempt.

    The token is generated on first access and then cached for the lifetime of
    the handle, so repeated saves with the same key are recognised as the same
    owner.
    """

    resource: str
    _token: Optional[str] = field(default=None, init=False, repr=False)
    _expiring_time: Optional[float] = field(default=None, init=False, repr=False)

    def __str__(self) -> str:
        return self.resource

    @property
    def token(self) -> str:
        if self._token is None:
            self._token = generate_token()
        return self._token

    @property
    def has_token(self) -> bool:
        return self._token is not None

    def reset_lifetime(self) -> None:
        self._expiring_time = None

    def reduce_lifetime(self, ttl: float) -> None:
        """Shorten the budget to ``ttl`` seconds from now; never lengthens it."""
        new_time = time.time() + ttl
        if self._expiring_time is None or self._expiring_time > new_time:
            self._expiring_time = new_time

    @property
    def remaining_lifetime(self) -> Optional[float]:
        """Seconds left before expiry, or None when no budget is set."""
        if self._expiring_time is None:
            return None
        return self._expiring_time - time.time()

    def is_expired(self) -> bool:
        remaining = self.remaining_lifetime
        return remaining is not None and remaining <= 0
