"""In-process store for tests and local runs. One asyncio.Lock stands in for store transactions."""

import asyncio
from datetime import datetime
from typing import Any

from app.core.exceptions import StoreError
from app.models.point_ledger import PointLedgerEntry
from app.models.provider_account import ProviderAccount, account_key
from app.models.transaction import PostbackTransaction, TransactionStatus, transaction_key
from app.models.user import User
from app.store.base import PostbackStore


class InMemoryStore(PostbackStore):
    def __init__(self) -> None:
        self.users: dict[str, User] = {}
        self.accounts: dict[str, ProviderAccount] = {}
        self.transactions: dict[str, PostbackTransaction] = {}
        self.ledger: list[PointLedgerEntry] = []
        self._lock = asyncio.Lock()

    async def ping(self) -> None:
        return None

    def add_user(self, user_id: str, points: int = 0) -> User:
        """Seed a user (accounts are owned outside the postback core)."""
        user = User(id=user_id, points=points)
        self.users[user_id] = user
        return user.model_copy()

    async def get_user(self, user_id: str) -> User | None:
        user = self.users.get(user_id)
        return user.model_copy() if user else None

    async def find_account(self, provider: str, player_id: str) -> ProviderAccount | None:
        account = self.accounts.get(account_key(provider, player_id))
        return account.model_copy() if account else None

    async def get_transaction(self, provider: str, transaction_id: str) -> PostbackTransaction | None:
        txn = self.transactions.get(transaction_key(provider, transaction_id))
        return txn.model_copy(deep=True) if txn else None

    async def insert_transaction(self, txn: PostbackTransaction) -> bool:
        async with self._lock:
            if txn.key in self.transactions:
                return False
            self.transactions[txn.key] = txn.model_copy(deep=True)
            return True

    async def apply_credit(self, txn: PostbackTransaction, entry: PointLedgerEntry) -> bool:
        async with self._lock:
            if txn.key in self.transactions:
                return False
            user = self.users.get(txn.user_id or "")
            if user is None:
                raise StoreError("User vanished during credit", details={"user_id": txn.user_id})
            now = entry.created_at
            player_id = txn.player_id or txn.user_id
            account = self.accounts.get(account_key(txn.provider, player_id))
            if account is None:
                account = ProviderAccount(provider=txn.provider, player_id=player_id, user_id=user.id)

            # Stage on copies, then swap in together.
            user = user.model_copy(update={
                "points": user.points + txn.points,
                "lifetime_points": user.lifetime_points + txn.points,
                "last_active_at": now,
            })
            account = account.model_copy(update={
                "total_earnings": account.total_earnings + txn.payout,
                "total_conversions": account.total_conversions + 1,
                "last_conversion_at": now,
            })
            self.transactions[txn.key] = txn.model_copy(deep=True)
            self.users[user.id] = user
            self.accounts[account.key] = account
            self.ledger.append(entry.model_copy())
            return True

    async def apply_reversal(
        self,
        txn: PostbackTransaction,
        status: TransactionStatus,
        reversed_at: datetime,
        payload: dict[str, Any],
        entry: PointLedgerEntry | None,
    ) -> bool:
        async with self._lock:
            current = self.transactions.get(txn.key)
            if current is None or current.status != TransactionStatus.COMPLETED:
                return False
            updated = current.model_copy(update={
                "status": status,
                "reversed_at": reversed_at,
                "reversal_payload": dict(payload),
            })
            user = self.users.get(current.user_id) if current.user_id else None
            if user is not None:
                user = user.model_copy(update={
                    "points": user.points - current.points,
                    "lifetime_points": user.lifetime_points - current.points,
                })
            # Receipt-only credits never touched the account stats.
            account = None
            if current.points > 0 and (current.player_id or current.user_id):
                account = self.accounts.get(account_key(current.provider, current.player_id or current.user_id))
            if account is not None:
                account = account.model_copy(update={
                    "total_earnings": account.total_earnings - current.payout,
                    "total_reversals": account.total_reversals + 1,
                })

            self.transactions[current.key] = updated
            if user is not None:
                self.users[user.id] = user
            if account is not None:
                self.accounts[account.key] = account
            if entry is not None:
                self.ledger.append(entry.model_copy())
            return True

    async def ledger_entries(self, user_id: str) -> list[PointLedgerEntry]:
        return [e.model_copy() for e in self.ledger if e.user_id == user_id]
