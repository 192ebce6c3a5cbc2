from app.models.user import User
from app.models.provider_account import ProviderAccount
from app.models.transaction import PostbackTransaction, TransactionStatus
from app.models.point_ledger import PointLedgerEntry

__all__ = [
    "User",
    "ProviderAccount",
    "PostbackTransaction",
    "TransactionStatus",
    "PointLedgerEntry",
]
