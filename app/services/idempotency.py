"""Duplicate detection for postbacks, keyed by the provider's transaction id."""

from app.core.logging import get_logger
from app.store.base import PostbackStore

log = get_logger(__name__)


class IdempotencyGuard:
    """
    Cheap pre-check that runs before any write. Two racing deliveries can both pass it;
    the store's create-if-absent transaction insert settles which one credits.
    """

    def __init__(self, store: PostbackStore):
        self.store = store

    async def is_duplicate(self, provider: str, transaction_id: str) -> bool:
        if await self.store.transaction_exists(provider, transaction_id):
            log.info("postback_duplicate", provider=provider, transaction_id=transaction_id)
            return True
        return False
