"""Offerwall provider registry and normalization of their postback inputs."""

import hashlib
import math
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Mapping

from fastapi import status
from pydantic import BaseModel, Field

from app.core.config import Settings
from app.core.exceptions import ConfigurationError, ValidationError

ADGEM = "adgem"
CPX = "cpx"


class AuthScheme(str, Enum):
    HMAC = "hmac"  # signature header over the request body
    DIGEST = "digest"  # hash of "{transaction_id}-{secret}" in the query string


class EventKind(str, Enum):
    CREDIT = "credit"
    REVERSAL = "reversal"
    FRAUD = "fraud"
    TEST = "test"
    UNKNOWN = "unknown"


MUTATING_EVENTS = (EventKind.CREDIT, EventKind.REVERSAL, EventKind.FRAUD)


class ProviderConfig(BaseModel):
    name: str
    display_name: str
    secret: str = Field(repr=False)
    points_per_unit: Decimal  # points = floor(payout * points_per_unit)
    scheme: AuthScheme
    auth_failure_status: int = status.HTTP_401_UNAUTHORIZED
    allow_unsigned: bool = False
    signature_header: str | None = None
    hash_params: list[str] = Field(default_factory=list)
    hash_algorithm: str = "md5"
    max_payout: Decimal = Decimal(10000)  # larger payouts are recorded without credit


class OfferMeta(BaseModel):
    offer_id: str | None = None
    offer_name: str | None = None
    raw: dict[str, Any] = Field(default_factory=dict)


class Notification(BaseModel):
    """A provider postback reduced to what the core needs."""
    provider: str
    event: EventKind
    raw_event: str | None = None
    transaction_id: str | None = None
    player_id: str | None = None
    user_ref: str | None = None
    payout: Decimal = Decimal(0)
    offer: OfferMeta = Field(default_factory=OfferMeta)
    credential: str | None = Field(default=None, repr=False)


def build_providers(settings: Settings) -> dict[str, ProviderConfig]:
    """Registry of enabled providers. Missing secrets are fatal here, not per request."""
    providers: dict[str, ProviderConfig] = {}
    if settings.adgem_enabled:
        if not settings.adgem_webhook_secret:
            raise ConfigurationError("ADGEM_WEBHOOK_SECRET is not set")
        providers[ADGEM] = ProviderConfig(
            name=ADGEM,
            display_name="AdGem",
            secret=settings.adgem_webhook_secret,
            points_per_unit=_rate(settings.adgem_points_per_unit, "ADGEM_POINTS_PER_UNIT"),
            scheme=AuthScheme.HMAC,
            auth_failure_status=status.HTTP_401_UNAUTHORIZED,
            allow_unsigned=settings.adgem_allow_unsigned,
            signature_header=settings.adgem_signature_header,
            max_payout=_rate(settings.adgem_max_payout, "ADGEM_MAX_PAYOUT"),
        )
    if settings.cpx_enabled:
        if not settings.cpx_app_secret:
            raise ConfigurationError("CPX_APP_SECRET is not set")
        providers[CPX] = ProviderConfig(
            name=CPX,
            display_name="CPX",
            secret=settings.cpx_app_secret,
            points_per_unit=_rate(settings.cpx_points_per_unit, "CPX_POINTS_PER_UNIT"),
            scheme=AuthScheme.DIGEST,
            auth_failure_status=status.HTTP_403_FORBIDDEN,
            hash_params=settings.cpx_hash_params,
            hash_algorithm=_hash_algorithm(settings.cpx_hash_algorithm, "CPX_HASH_ALGORITHM"),
            max_payout=_rate(settings.cpx_max_payout, "CPX_MAX_PAYOUT"),
        )
    return providers


def _rate(value: float, name: str) -> Decimal:
    rate = Decimal(str(value))
    if not rate.is_finite() or rate <= 0:
        raise ConfigurationError(f"{name} must be a positive number")
    return rate


def _hash_algorithm(value: str, name: str) -> str:
    algorithm = (value or "").strip().lower()
    try:
        hashlib.new(algorithm).hexdigest()
    except (ValueError, TypeError) as e:
        raise ConfigurationError(f"{name} {value!r} is not a supported hash algorithm") from e
    return algorithm


def parse_amount(value: Any) -> Decimal:
    """Payout as Decimal; missing, non-numeric or negative amounts count as zero."""
    if value is None or isinstance(value, bool):
        return Decimal(0)
    if isinstance(value, float) and not math.isfinite(value):
        return Decimal(0)
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return Decimal(0)
    if not amount.is_finite() or amount < 0:
        return Decimal(0)
    return amount


def _str_or_none(value: Any) -> str | None:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


_ADGEM_EVENTS = {
    "conversion": EventKind.CREDIT,
    "reversal": EventKind.REVERSAL,
    "fraud": EventKind.FRAUD,
    "test": EventKind.TEST,
}

_STATUS_CODES = {
    "1": EventKind.CREDIT,
    "2": EventKind.REVERSAL,
}


def parse_adgem(body: Any, signature: str | None = None) -> Notification:
    """AdGem JSON webhook: {event, player_id, offer_id, payout, conversion_id|trans_id, user_id?}."""
    if not isinstance(body, dict):
        raise ValidationError("Invalid JSON body")
    raw_event = _str_or_none(body.get("event"))
    if raw_event:
        event = _ADGEM_EVENTS.get(raw_event.lower(), EventKind.UNKNOWN)
    else:
        event = _STATUS_CODES.get(_str_or_none(body.get("status")) or "", EventKind.UNKNOWN)
    return Notification(
        provider=ADGEM,
        event=event,
        raw_event=raw_event or _str_or_none(body.get("status")),
        transaction_id=_str_or_none(body.get("conversion_id")) or _str_or_none(body.get("trans_id")),
        player_id=_str_or_none(body.get("player_id")),
        user_ref=_str_or_none(body.get("user_id")),
        payout=parse_amount(body.get("payout")),
        offer=OfferMeta(
            offer_id=_str_or_none(body.get("offer_id")),
            offer_name=_str_or_none(body.get("offer_name")),
            raw=body,
        ),
        credential=_str_or_none(signature),
    )


def parse_cpx(params: Mapping[str, str], config: ProviderConfig) -> Notification:
    """CPX GET postback: {status, trans_id, user_id?, amount_local?, hash|secure_hash, subid_1?, offer_id?}."""
    transaction_id = _str_or_none(params.get("trans_id"))
    credential = next((params[p] for p in config.hash_params if _str_or_none(params.get(p))), None)
    if not transaction_id or not credential:
        raise ValidationError(
            "Missing parameters",
            details={"required": ["trans_id", " or ".join(config.hash_params)]},
        )
    raw_status = _str_or_none(params.get("status"))
    user_id = _str_or_none(params.get("user_id"))
    return Notification(
        provider=CPX,
        event=_STATUS_CODES.get(raw_status or "", EventKind.UNKNOWN),
        raw_event=raw_status,
        transaction_id=transaction_id,
        player_id=user_id,
        user_ref=user_id or _str_or_none(params.get("subid_1")),
        payout=parse_amount(params.get("amount_local")),
        offer=OfferMeta(
            offer_id=_str_or_none(params.get("offer_id")),
            raw=dict(params),
        ),
        credential=credential.strip(),
    )
