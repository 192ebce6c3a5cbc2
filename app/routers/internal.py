from fastapi import APIRouter, Depends

from app.deps import get_store, require_internal_token
from app.services import reconciliation
from app.store.base import PostbackStore

router = APIRouter(dependencies=[Depends(require_internal_token)])


@router.get("/reconcile/{user_id}")
async def reconcile_user(user_id: str, store: PostbackStore = Depends(get_store)):
    """Balance vs. point ledger for one user."""
    return await reconciliation.reconcile_user(store, user_id)
