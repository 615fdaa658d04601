"""Randomized identifiers for credentials and client identities."""

from __future__ import annotations

import random
import string

_ALPHABET = string.ascii_letters + string.digits


class IdentifierGenerator:
    """Produces syntactically valid names; seed it for reproducible output."""

    def __init__(self, seed: int | None = None, *, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random(seed)

    def client_id(self) -> str:
        return f"tbmq_{self._token(8)}"

    def username(self) -> str:
        return f"tbmq_un_{self._token(8)}"

    def credentials_name(self) -> str:
        return f"WebSocket Credentials {self._token(5)}"

    @staticmethod
    def connection_name(index: int) -> str:
        """Default display name for the n-th connection."""

        return f"WebSocket Connection {index}"

    def _token(self, length: int) -> str:
        return "".join(self._rng.choice(_ALPHABET) for _ in range(length))


__all__ = ["IdentifierGenerator"]
