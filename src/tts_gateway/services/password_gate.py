"""Single shared-secret gate in front of the UI."""

from __future__ import annotations

import hmac


class PasswordGate:
    def __init__(self, secret: str | None):
        self._secret = secret or ""

    def check_required(self) -> bool:
        """Return True when a non-empty password is configured."""
        return bool(self._secret)

    def verify(self, candidate: str) -> bool:
        # An unset secret never matches, including the empty candidate
        if not self._secret:
            return False
        return hmac.compare_digest(
            candidate.encode("utf-8"), self._secret.encode("utf-8")
        )


__all__ = ["PasswordGate"]
