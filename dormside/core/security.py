"""
Admin Session Tokens

Stateless, HMAC-signed session tokens carried in the ``dormside_admin``
cookie. Token format::

    base64url(json({"u": username, "exp": epoch_ms})) + "." + base64url(hmac_sha256)

Only the signature and expiry are checked; the username is informational.
"""

import hashlib
import hmac
import json
import logging
import time
from base64 import urlsafe_b64decode, urlsafe_b64encode
from typing import Optional

from dormside.core.config import Settings
from dormside.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

COOKIE_NAME = "dormside_admin"


def _b64encode(raw: bytes) -> str:
    return urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64decode(value: str) -> bytes:
    return urlsafe_b64decode(value + "=" * (-len(value) % 4))


class AdminSessionSigner:
    """Issues and verifies admin session tokens."""

    def __init__(self, secret: str, ttl_seconds: int = 60 * 60 * 24 * 7):
        self._secret = secret.encode("utf-8")
        self.ttl_seconds = ttl_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> "AdminSessionSigner":
        if not settings.admin_session_secret:
            raise ConfigurationError(
                "Missing ADMIN_SESSION_SECRET. Set a strong random string in your environment."
            )
        return cls(settings.admin_session_secret, settings.admin_session_ttl_seconds)

    def _sign(self, payload: str) -> str:
        digest = hmac.new(self._secret, payload.encode("ascii"), hashlib.sha256).digest()
        return _b64encode(digest)

    def issue(self, username: str, now: Optional[float] = None) -> str:
        now = time.time() if now is None else now
        body = json.dumps({"u": username, "exp": int((now + self.ttl_seconds) * 1000)})
        payload = _b64encode(body.encode("utf-8"))
        return f"{payload}.{self._sign(payload)}"

    def verify(self, token: Optional[str], now: Optional[float] = None) -> bool:
        if not token or "." not in token:
            return False

        payload, signature = token.split(".", 1)
        if not payload or not signature:
            return False

        if not hmac.compare_digest(signature, self._sign(payload)):
            return False

        try:
            data = json.loads(_b64decode(payload))
        except ValueError:
            logger.warning("Admin session payload could not be decoded")
            return False

        exp = data.get("exp") if isinstance(data, dict) else None
        if not isinstance(exp, (int, float)):
            return False

        now = time.time() if now is None else now
        return now * 1000 <= exp


def validate_credentials(settings: Settings, username: str, password: str) -> bool:
    """Compare submitted credentials against the configured admin account."""
    if not settings.admin_username or not settings.admin_password:
        raise ConfigurationError("Missing ADMIN_USERNAME or ADMIN_PASSWORD in the environment.")

    user_ok = hmac.compare_digest(username.encode("utf-8"), settings.admin_username.encode("utf-8"))
    pass_ok = hmac.compare_digest(password.encode("utf-8"), settings.admin_password.encode("utf-8"))
    return user_ok and pass_ok
