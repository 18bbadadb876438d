# teamroster/core/auth.py
import base64
import hashlib
import hmac
import json
import time
from typing import Optional

from teamroster.core.config import settings

# Session lifetime (1 week)
SESSION_EXP_SECONDS = 7 * 24 * 60 * 60

def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode().rstrip("=")

def _b64decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)

def _sign(payload_b64: str) -> bytes:
    return hmac.new(settings.SECRET_KEY.encode(), payload_b64.encode(), hashlib.sha256).digest()

def create_session_token(actor_id: int, ttl_seconds: int = SESSION_EXP_SECONDS) -> str:
    """Signed `<payload>.<signature>` token carrying the acting user's id."""
    payload = {"sub": int(actor_id), "exp": int(time.time()) + ttl_seconds}
    payload_b64 = _b64encode(json.dumps(payload, separators=(",", ":")).encode())
    return f"{payload_b64}.{_b64encode(_sign(payload_b64))}"

def decode_session_token(token: str) -> Optional[int]:
    """Returns the actor id, or None for a malformed, forged or expired token."""
    try:
        payload_b64, signature_b64 = token.split(".", 1)
        if not hmac.compare_digest(_sign(payload_b64), _b64decode(signature_b64)):
            return None
        payload = json.loads(_b64decode(payload_b64))
    except (ValueError, TypeError):
        return None
    if payload.get("exp", 0) < time.time():
        return None
    sub = payload.get("sub")
    return int(sub) if isinstance(sub, int) or (isinstance(sub, str) and sub.isdigit()) else None
