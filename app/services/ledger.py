"""Conversion credits: payout -> points, and the atomic balance/stats/transaction/ledger write."""

from datetime import datetime
from decimal import ROUND_FLOOR, Decimal

from app.core.logging import get_logger
from app.models.point_ledger import PointLedgerEntry
from app.models.transaction import PostbackTransaction, TransactionStatus
from app.services.outcomes import Outcome, OutcomeStatus
from app.services.providers import OfferMeta, ProviderConfig
from app.store.base import PostbackStore

log = get_logger(__name__)


def compute_points(payout: Decimal, points_per_unit: Decimal) -> int:
    """floor(payout * rate), exact in decimal so 0.29 * 100 is 29, not 28."""
    if payout <= 0:
        return 0
    return int((payout * points_per_unit).to_integral_value(rounding=ROUND_FLOOR))


class LedgerApplier:
    def __init__(self, store: PostbackStore, providers: dict[str, ProviderConfig]):
        self.store = store
        self.providers = providers

    async def resolve_user(self, provider: str, player_id: str | None, user_ref: str | None) -> str | None:
        """Known player mapping first, then the explicit user id if that user exists."""
        if player_id:
            account = await self.store.find_account(provider, player_id)
            if account:
                return account.user_id
        if user_ref:
            user = await self.store.get_user(user_ref)
            if user:
                return user.id
        return None

    async def apply(
        self,
        provider: str,
        transaction_id: str,
        player_id: str | None,
        user_ref: str | None,
        payout: Decimal,
        offer: OfferMeta,
    ) -> Outcome:
        config = self.providers[provider]
        if payout > config.max_payout:
            log.warning(
                "postback_payout_rejected",
                provider=provider,
                transaction_id=transaction_id,
                payout=str(payout),
                max_payout=str(config.max_payout),
            )
            points = 0
        else:
            points = compute_points(payout, config.points_per_unit)
        now = datetime.utcnow()
        txn = PostbackTransaction(
            provider=provider,
            transaction_id=transaction_id,
            player_id=player_id,
            offer_id=offer.offer_id,
            offer_name=offer.offer_name,
            payout=float(payout),
            points=points,
            created_at=now,
            raw_payload=offer.raw,
        )

        user_id = await self.resolve_user(provider, player_id, user_ref)
        if user_id is None:
            txn.status = TransactionStatus.PENDING
            if not await self.store.insert_transaction(txn):
                return Outcome(status=OutcomeStatus.DUPLICATE, transaction_id=transaction_id)
            log.warning(
                "postback_user_not_found",
                provider=provider,
                transaction_id=transaction_id,
                player_id=player_id,
                user_ref=user_ref,
                points=points,
            )
            return Outcome(status=OutcomeStatus.USER_NOT_FOUND, transaction_id=transaction_id)

        txn.user_id = user_id
        if points == 0:
            # Receipt only; nothing to credit.
            if not await self.store.insert_transaction(txn):
                return Outcome(status=OutcomeStatus.DUPLICATE, transaction_id=transaction_id)
            log.info("postback_no_credit", provider=provider, transaction_id=transaction_id, payout=str(payout))
            return Outcome(status=OutcomeStatus.NO_CREDIT, transaction_id=transaction_id, user_id=user_id)

        entry = PointLedgerEntry(
            user_id=user_id,
            amount=points,
            type=f"{provider}_conversion",
            source=provider,
            transaction_id=transaction_id,
            description=f"{config.display_name}: {offer.offer_name or 'Offer'}",
            created_at=now,
        )
        if not await self.store.apply_credit(txn, entry):
            # Lost the create-if-absent race to a concurrent delivery.
            log.info("postback_duplicate", provider=provider, transaction_id=transaction_id, stage="apply")
            return Outcome(status=OutcomeStatus.DUPLICATE, transaction_id=transaction_id)

        log.info(
            "postback_credited",
            provider=provider,
            transaction_id=transaction_id,
            user_id=user_id,
            points=points,
            payout=str(payout),
        )
        return Outcome(status=OutcomeStatus.CREDITED, transaction_id=transaction_id, user_id=user_id, points=points)
