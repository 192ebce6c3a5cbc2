"""Beanie documents backing MongoStore. Fields mirror app.models; ids are the natural keys."""

from datetime import datetime
from typing import Any

from beanie import Document
from pydantic import Field

from app.models.transaction import TransactionStatus


class UserDocument(Document):
    id: str
    points: int = 0
    lifetime_points: int = 0
    last_active_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "users"


class ProviderAccountDocument(Document):
    id: str  # "{provider}:{player_id}"
    provider: str
    player_id: str
    user_id: str
    total_earnings: float = 0
    total_conversions: int = 0
    total_reversals: int = 0
    last_conversion_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "provider_accounts"
        indexes = [[("user_id", 1)]]


class TransactionDocument(Document):
    id: str  # "{provider}:{transaction_id}", unique by _id
    provider: str
    transaction_id: str
    user_id: str | None = None
    player_id: str | None = None
    offer_id: str | None = None
    offer_name: str | None = None
    payout: float = 0
    points: int = 0
    status: TransactionStatus = TransactionStatus.COMPLETED
    created_at: datetime = Field(default_factory=datetime.utcnow)
    reversed_at: datetime | None = None
    raw_payload: dict[str, Any] = Field(default_factory=dict)
    reversal_payload: dict[str, Any] | None = None

    class Settings:
        name = "postback_transactions"
        indexes = [
            [("provider", 1), ("status", 1)],
            [("user_id", 1), ("created_at", -1)],
        ]


class PointLedgerDocument(Document):
    user_id: str
    amount: int
    type: str
    source: str
    transaction_id: str
    description: str = ""
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "point_ledger"
        indexes = [
            [("user_id", 1), ("created_at", 1)],
            [("source", 1), ("transaction_id", 1)],
        ]


DOCUMENT_MODELS = [
    UserDocument,
    ProviderAccountDocument,
    TransactionDocument,
    PointLedgerDocument,
]
