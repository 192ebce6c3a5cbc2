from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from app.models.point_ledger import PointLedgerEntry
from app.models.provider_account import ProviderAccount
from app.models.transaction import PostbackTransaction, TransactionStatus
from app.models.user import User


class PostbackStore(ABC):
    """
    Transactional store behind the postback core.

    Reads are plain lookups. The two mutating operations (apply_credit, apply_reversal)
    are each one atomic multi-record write: no reader sees half of either.
    """

    @abstractmethod
    async def ping(self) -> None:
        """Raise if the store is unreachable."""
        ...

    @abstractmethod
    async def get_user(self, user_id: str) -> User | None:
        ...

    @abstractmethod
    async def find_account(self, provider: str, player_id: str) -> ProviderAccount | None:
        ...

    @abstractmethod
    async def get_transaction(self, provider: str, transaction_id: str) -> PostbackTransaction | None:
        ...

    async def transaction_exists(self, provider: str, transaction_id: str) -> bool:
        return await self.get_transaction(provider, transaction_id) is not None

    @abstractmethod
    async def insert_transaction(self, txn: PostbackTransaction) -> bool:
        """Create-if-absent with no balance effect. False if the key already exists."""
        ...

    @abstractmethod
    async def apply_credit(self, txn: PostbackTransaction, entry: PointLedgerEntry) -> bool:
        """
        Atomically: create-if-absent txn, increment user points, upsert the provider
        account stats, append the ledger entry.
        Returns False (and writes nothing) if the transaction key already exists.
        """
        ...

    @abstractmethod
    async def apply_reversal(
        self,
        txn: PostbackTransaction,
        status: TransactionStatus,
        reversed_at: datetime,
        payload: dict[str, Any],
        entry: PointLedgerEntry | None,
    ) -> bool:
        """
        Atomically: move txn from completed to status, decrement the user by txn.points,
        adjust provider account stats, append entry (if any).
        Returns False (and writes nothing) if txn is no longer completed.
        """
        ...

    @abstractmethod
    async def ledger_entries(self, user_id: str) -> list[PointLedgerEntry]:
        """All ledger entries for user, oldest first."""
        ...

    async def close(self) -> None:
        return None
