"""Postback credential checks: HMAC body signatures and per-transaction digests."""

import hashlib
import hmac
import secrets
from typing import Any

import orjson


def _hmac_hex(secret: str, payload: bytes) -> str:
    return hmac.new(
        secret.encode("utf-8"),
        payload,
        hashlib.sha256,
    ).hexdigest()


def canonical_json(body: Any) -> bytes:
    """Compact JSON, same shape as JavaScript's JSON.stringify output."""
    return orjson.dumps(body)


def verify_hmac_signature(payload: bytes, signature: str, secret: str, body: Any = None) -> bool:
    """
    HMAC-SHA256 over the raw body; when the parsed body is given, its canonical
    serialization is accepted too (senders that sign the re-serialized object).
    """
    if not signature or not secret:
        return False
    supplied = signature.strip().lower()
    if hmac.compare_digest(_hmac_hex(secret, payload).encode(), supplied.encode()):
        return True
    if body is not None:
        return hmac.compare_digest(_hmac_hex(secret, canonical_json(body)).encode(), supplied.encode())
    return False


def expected_digest(transaction_id: str, secret: str, algorithm: str = "md5") -> str:
    h = hashlib.new(algorithm)
    h.update(f"{transaction_id}-{secret}".encode("utf-8"))
    return h.hexdigest()


def verify_digest_hash(transaction_id: str, supplied_hash: str, secret: str, algorithm: str = "md5") -> bool:
    if not transaction_id or not supplied_hash or not secret:
        return False
    expected = expected_digest(transaction_id, secret, algorithm)
    return hmac.compare_digest(expected.encode(), supplied_hash.strip().lower().encode())


def is_valid_internal_token(expected_token: str, received_token: str | None) -> bool:
    if not expected_token or not received_token:
        return False
    return secrets.compare_digest(expected_token.encode(), received_token.encode())
