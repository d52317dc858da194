from __future__ import annotations

import base64
import hashlib
import hmac
import json


class SignatureError(RuntimeError):
    pass


def derive_key(secret: str, purpose: str) -> str:
    """Derive a purpose-scoped signing key from the server secret."""
    return hashlib.sha256(f"sessiongate:{purpose}:{secret}".encode()).hexdigest()


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode()


def _b64decode(data: str) -> bytes:
    return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))


def encode(payload: dict, key: str) -> str:
    data = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode()
    sig = hmac.new(key.encode(), data, hashlib.sha256).digest()
    return f"{_b64encode(data)}.{_b64encode(sig)}"


def decode(token: str, key: str) -> dict:
    parts = token.split(".")
    if len(parts) != 2 or not all(parts):
        raise SignatureError("Invalid token format.")
    data_b64, sig_b64 = parts
    try:
        data = _b64decode(data_b64)
        actual_sig = _b64decode(sig_b64)
    except ValueError:
        raise SignatureError("Token is not valid base64.") from None

    expected_sig = hmac.new(key.encode(), data, hashlib.sha256).digest()
    if not hmac.compare_digest(expected_sig, actual_sig):
        raise SignatureError("Token signature verification failed.")

    try:
        payload = json.loads(data)
    except ValueError:
        raise SignatureError("Token payload is not valid JSON.") from None
    if not isinstance(payload, dict):
        raise SignatureError("Token payload must be a JSON object.")
    return payload
