"""Principal sessions: signed tokens carrying the identity provider's metadata.

A session token holds:
- ``sub``: the identity-provider user id
- ``email``
- ``app_metadata``: server-controlled claims (``org_id``, ``org_name``, ``role``)
- ``user_metadata``: user-editable claims (``default_org_id``, ``org_name``)
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
from typing import Any

from src.core.logging import get_logger
from src.core.types import Principal

log = get_logger(__name__)


class JWTManager:
    """Minimal JWT implementation (HS256): no external dependency."""

    def __init__(self, secret: str, expiry_hours: int = 24) -> None:
        self._secret: str = secret
        self._expiry_hours: int = expiry_hours

    def create_token(self, user_id: str, extra_claims: dict[str, Any] | None = None) -> str:
        """Create a signed JWT token."""
        now = int(time.time())
        payload: dict[str, Any] = {
            "sub": user_id,
            "iat": now,
            "exp": now + self._expiry_hours * 3600,
        }
        if extra_claims:
            payload.update(extra_claims)

        header = self._b64url_encode(json.dumps({"alg": "HS256", "typ": "JWT"}).encode())
        body = self._b64url_encode(json.dumps(payload).encode())
        signature = self._sign(f"{header}.{body}")

        return f"{header}.{body}.{signature}"

    def verify_token(self, token: str) -> dict[str, Any] | None:
        """Verify a JWT token and return the payload, or None if invalid."""
        parts = token.split(".")
        if len(parts) != 3:
            return None

        header_b64, body_b64, sig = parts
        expected_sig = self._sign(f"{header_b64}.{body_b64}")

        if not hmac.compare_digest(sig, expected_sig):
            log.warning("jwt_invalid_signature")
            return None

        try:
            payload = json.loads(self._b64url_decode(body_b64))
        except (json.JSONDecodeError, ValueError):
            log.warning("jwt_decode_error")
            return None

        if not isinstance(payload, dict):
            return None

        # Check expiry
        exp = payload.get("exp", 0)
        if int(time.time()) > exp:
            log.debug("jwt_expired", sub=payload.get("sub"))
            return None

        return payload

    def _sign(self, message: str) -> str:
        sig_bytes = hmac.new(
            self._secret.encode(),
            message.encode(),
            hashlib.sha256,
        ).digest()
        return self._b64url_encode(sig_bytes)

    @staticmethod
    def _b64url_encode(data: bytes) -> str:
        return base64.urlsafe_b64encode(data).rstrip(b"=").decode()

    @staticmethod
    def _b64url_decode(s: str) -> bytes:
        padding = 4 - len(s) % 4
        if padding != 4:
            s += "=" * padding
        return base64.urlsafe_b64decode(s)


def principal_from_claims(payload: dict[str, Any]) -> Principal | None:
    """Build a Principal from verified token claims. None if ``sub`` is missing."""
    user_id = payload.get("sub")
    if not user_id:
        return None

    app_meta = payload.get("app_metadata")
    user_meta = payload.get("user_metadata")
    return Principal(
        user_id=str(user_id),
        email=str(payload.get("email") or ""),
        app_metadata=app_meta if isinstance(app_meta, dict) else {},
        user_metadata=user_meta if isinstance(user_meta, dict) else {},
    )
