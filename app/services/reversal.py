"""Reversal and fraud postbacks: undo a recorded conversion exactly once."""

from datetime import datetime
from typing import Any

from app.core.logging import get_logger
from app.models.point_ledger import PointLedgerEntry
from app.models.transaction import REVERSED_STATUSES, TransactionStatus
from app.services.outcomes import Outcome, OutcomeStatus
from app.services.providers import ProviderConfig
from app.store.base import PostbackStore

log = get_logger(__name__)


class ReversalResolver:
    def __init__(self, store: PostbackStore, providers: dict[str, ProviderConfig]):
        self.store = store
        self.providers = providers

    async def reverse(
        self,
        provider: str,
        transaction_id: str,
        payload: dict[str, Any],
        fraud: bool = False,
    ) -> Outcome:
        """
        Deduct exactly the points recorded on the original transaction (never recomputed
        from the current rate). Balances may go negative; that is left visible rather than clamped.
        Repeated or concurrent deliveries deduct once.
        """
        txn = await self.store.get_transaction(provider, transaction_id)
        if txn is None:
            log.warning("reversal_original_not_found", provider=provider, transaction_id=transaction_id)
            return Outcome(status=OutcomeStatus.ORIGINAL_NOT_FOUND, transaction_id=transaction_id)
        if txn.status in REVERSED_STATUSES:
            log.info("reversal_already_applied", provider=provider, transaction_id=transaction_id, status=txn.status.value)
            return Outcome(status=OutcomeStatus.ALREADY_REVERSED, transaction_id=transaction_id, user_id=txn.user_id)
        if txn.status != TransactionStatus.COMPLETED:
            log.warning("reversal_not_reversible", provider=provider, transaction_id=transaction_id, status=txn.status.value)
            return Outcome(status=OutcomeStatus.NOT_REVERSIBLE, transaction_id=transaction_id)

        new_status = TransactionStatus.FRAUD if fraud else TransactionStatus.REVERSED
        now = datetime.utcnow()
        entry = None
        if txn.user_id and txn.points > 0:
            config = self.providers.get(provider)
            label = config.display_name if config else provider
            entry = PointLedgerEntry(
                user_id=txn.user_id,
                amount=-txn.points,
                type=f"{provider}_{'fraud' if fraud else 'reversal'}",
                source=provider,
                transaction_id=transaction_id,
                description=f"{label}: {'Fraud' if fraud else 'Reversal'}",
                created_at=now,
            )

        if not await self.store.apply_reversal(txn, new_status, now, payload, entry):
            log.info("reversal_already_applied", provider=provider, transaction_id=transaction_id, stage="apply")
            return Outcome(status=OutcomeStatus.ALREADY_REVERSED, transaction_id=transaction_id, user_id=txn.user_id)

        log.info(
            "postback_reversed",
            provider=provider,
            transaction_id=transaction_id,
            user_id=txn.user_id,
            points_deducted=txn.points,
            status=new_status.value,
        )
        return Outcome(
            status=OutcomeStatus.REVERSED,
            transaction_id=transaction_id,
            user_id=txn.user_id,
            points=txn.points,
        )
