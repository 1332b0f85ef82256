"""
The node secret shared by the request dispatcher and the token issuer.
"""

import threading
from typing import Optional


class Credential:
    """
    Holds the node secret.

    The same secret is sent as ``Authorization: Bearer <secret>`` and used as
    the HMAC key for issued tokens. Both consumers read it from one
    Credential, so a rotation changes the header and the signing key in a
    single step.
    """

    def __init__(self, secret: str = "") -> None:
        self._secret = secret
        self._lock = threading.Lock()

    @property
    def value(self) -> str:
        return self._secret

    @property
    def is_set(self) -> bool:
        return bool(self._secret)

    def rotate(self, secret: str) -> None:
        with self._lock:
            self._secret = secret

    def authorization_header(self) -> Optional[str]:
        """``Bearer <secret>``, or None when no secret is configured."""
        secret = self._secret
        if not secret:
            return None
        return f"Bearer {secret}"

    def __repr__(self) -> str:
        return f"Credential(is_set={self.is_set})"
