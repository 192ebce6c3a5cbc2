"""Builders for provider postbacks used across tests."""

import hashlib
import hmac

import orjson

ADGEM_SECRET = "adgem-secret"
CPX_SECRET = "cpx-secret"
INTERNAL_TOKEN = "internal-token"


def cpx_hash(trans_id: str, secret: str = CPX_SECRET) -> str:
    return hashlib.md5(f"{trans_id}-{secret}".encode()).hexdigest()


def cpx_params(trans_id: str = "T1", status: str = "1", user_id: str | None = "U1", amount: str | None = "2.00", **extra) -> dict:
    params = {"trans_id": trans_id, "status": status, "secure_hash": cpx_hash(trans_id)}
    if user_id is not None:
        params["user_id"] = user_id
    if amount is not None:
        params["amount_local"] = amount
    params.update(extra)
    return params


def adgem_body(conversion_id: str = "C1", event: str = "conversion", player_id: str = "P1", payout=1.5, **extra) -> dict:
    body = {
        "event": event,
        "player_id": player_id,
        "offer_id": "O1",
        "offer_name": "Install game",
        "payout": payout,
        "conversion_id": conversion_id,
    }
    body.update(extra)
    return body


def sign(raw: bytes, secret: str = ADGEM_SECRET) -> str:
    return hmac.new(secret.encode(), raw, hashlib.sha256).hexdigest()


def signed(body: dict) -> tuple[bytes, dict]:
    raw = orjson.dumps(body)
    return raw, {"Content-Type": "application/json", "X-AdGem-Signature": sign(raw)}
