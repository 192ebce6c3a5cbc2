"""MongoDB store: beanie documents, motor multi-document transactions (replica set required)."""

from datetime import datetime
from typing import Any

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorClientSession
from pymongo.errors import DuplicateKeyError, PyMongoError

from app.core.exceptions import StoreError
from app.core.logging import get_logger
from app.db.documents import (
    PointLedgerDocument,
    ProviderAccountDocument,
    TransactionDocument,
    UserDocument,
)
from app.models.point_ledger import PointLedgerEntry
from app.models.provider_account import ProviderAccount, account_key
from app.models.transaction import PostbackTransaction, TransactionStatus, transaction_key
from app.models.user import User
from app.store.base import PostbackStore

log = get_logger(__name__)


class MongoStore(PostbackStore):
    def __init__(self, client: AsyncIOMotorClient):
        self._client = client

    async def ping(self) -> None:
        await self._client.admin.command("ping")

    async def get_user(self, user_id: str) -> User | None:
        doc = await UserDocument.get(user_id)
        return User.model_validate(doc.model_dump()) if doc else None

    async def find_account(self, provider: str, player_id: str) -> ProviderAccount | None:
        doc = await ProviderAccountDocument.get(account_key(provider, player_id))
        return ProviderAccount.model_validate(doc.model_dump()) if doc else None

    async def get_transaction(self, provider: str, transaction_id: str) -> PostbackTransaction | None:
        doc = await TransactionDocument.get(transaction_key(provider, transaction_id))
        return PostbackTransaction.model_validate(doc.model_dump()) if doc else None

    async def transaction_exists(self, provider: str, transaction_id: str) -> bool:
        count = await TransactionDocument.find({"_id": transaction_key(provider, transaction_id)}).count()
        return count > 0

    async def insert_transaction(self, txn: PostbackTransaction) -> bool:
        try:
            await TransactionDocument(id=txn.key, **txn.model_dump()).insert()
        except DuplicateKeyError:
            return False
        return True

    async def apply_credit(self, txn: PostbackTransaction, entry: PointLedgerEntry) -> bool:
        now = entry.created_at
        player_id = txn.player_id or txn.user_id
        acc_key = account_key(txn.provider, player_id)

        async def _credit(session: AsyncIOMotorClientSession) -> None:
            # Fails with DuplicateKeyError when another delivery got here first.
            await TransactionDocument(id=txn.key, **txn.model_dump()).insert(session=session)
            res = await UserDocument.get_motor_collection().update_one(
                {"_id": txn.user_id},
                {
                    "$inc": {"points": txn.points, "lifetime_points": txn.points},
                    "$set": {"last_active_at": now},
                },
                session=session,
            )
            if res.matched_count == 0:
                raise StoreError("User vanished during credit", details={"user_id": txn.user_id})
            await ProviderAccountDocument.get_motor_collection().update_one(
                {"_id": acc_key},
                {
                    "$inc": {"total_earnings": txn.payout, "total_conversions": 1},
                    "$set": {"last_conversion_at": now},
                    "$setOnInsert": {
                        "provider": txn.provider,
                        "player_id": player_id,
                        "user_id": txn.user_id,
                        "total_reversals": 0,
                        "created_at": now,
                    },
                },
                upsert=True,
                session=session,
            )
            await PointLedgerDocument(**entry.model_dump()).insert(session=session)

        try:
            async with await self._client.start_session() as session:
                await session.with_transaction(_credit)
        except DuplicateKeyError:
            return False
        except PyMongoError as e:
            raise StoreError("Credit transaction failed", details={"reason": str(e)[:500]}) from e
        return True

    async def apply_reversal(
        self,
        txn: PostbackTransaction,
        status: TransactionStatus,
        reversed_at: datetime,
        payload: dict[str, Any],
        entry: PointLedgerEntry | None,
    ) -> bool:
        async def _reverse(session: AsyncIOMotorClientSession) -> bool:
            # Compare-and-set on status: only one reversal delivery wins.
            res = await TransactionDocument.get_motor_collection().update_one(
                {"_id": txn.key, "status": TransactionStatus.COMPLETED.value},
                {"$set": {"status": status.value, "reversed_at": reversed_at, "reversal_payload": payload}},
                session=session,
            )
            if res.modified_count == 0:
                return False
            if txn.user_id and txn.points:
                await UserDocument.get_motor_collection().update_one(
                    {"_id": txn.user_id},
                    {"$inc": {"points": -txn.points, "lifetime_points": -txn.points}},
                    session=session,
                )
            player_id = txn.player_id or txn.user_id
            # Receipt-only credits never touched the account stats.
            if player_id and txn.points > 0:
                await ProviderAccountDocument.get_motor_collection().update_one(
                    {"_id": account_key(txn.provider, player_id)},
                    {"$inc": {"total_earnings": -txn.payout, "total_reversals": 1}},
                    session=session,
                )
            if entry is not None:
                await PointLedgerDocument(**entry.model_dump()).insert(session=session)
            return True

        try:
            async with await self._client.start_session() as session:
                return await session.with_transaction(_reverse)
        except PyMongoError as e:
            raise StoreError("Reversal transaction failed", details={"reason": str(e)[:500]}) from e

    async def ledger_entries(self, user_id: str) -> list[PointLedgerEntry]:
        docs = await PointLedgerDocument.find({"user_id": user_id}).sort("+created_at").to_list()
        return [PointLedgerEntry.model_validate(d.model_dump()) for d in docs]

    async def close(self) -> None:
        self._client.close()
        log.info("store_closed", backend="mongo")
