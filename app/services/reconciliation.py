"""Balance vs. point-ledger check, for monitoring credits lost to swallowed store failures."""

from collections import defaultdict

from app.core.exceptions import NotFoundError
from app.store.base import PostbackStore


async def reconcile_user(store: PostbackStore, user_id: str) -> dict:
    """
    Compare the user's balance with the sum of their ledger entries.
    Drift is expected only when points came from outside the postback flow.
    """
    user = await store.get_user(user_id)
    if not user:
        raise NotFoundError("User not found")
    entries = await store.ledger_entries(user_id)
    by_source: dict[str, int] = defaultdict(int)
    for e in entries:
        by_source[e.source] += e.amount
    ledger_total = sum(e.amount for e in entries)
    return {
        "user_id": user_id,
        "balance": user.points,
        "lifetime_points": user.lifetime_points,
        "ledger_total": ledger_total,
        "ledger_entries": len(entries),
        "by_source": dict(by_source),
        "drift": user.points - ledger_total,
        "consistent": user.points == ledger_total,
    }
