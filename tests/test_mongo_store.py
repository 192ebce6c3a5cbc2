"""MongoStore against a live test database. Skipped unless MONGODB_URI reaches a replica set."""

import os
import uuid
from datetime import datetime
from decimal import Decimal

import pytest
import pytest_asyncio
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError

from app.models.point_ledger import PointLedgerEntry
from app.models.transaction import PostbackTransaction, TransactionStatus
from app.services.ledger import LedgerApplier
from app.services.outcomes import OutcomeStatus
from app.services.providers import CPX, OfferMeta

pytestmark = pytest.mark.asyncio


@pytest_asyncio.fixture
async def mongo_store(settings):
    from app.db.documents import UserDocument
    from app.db.init import init_db
    from app.store.mongo import MongoStore

    uri = os.environ.get("MONGODB_URI", "mongodb://localhost:27017")
    check = AsyncIOMotorClient(uri, serverSelectionTimeoutMS=500)
    try:
        hello = await check.admin.command("hello")
    except PyMongoError:
        pytest.skip("MongoDB is not reachable")
    finally:
        check.close()
    if "setName" not in hello:
        pytest.skip("MongoDB transactions need a replica set")

    db_name = f"postbacks_test_{uuid.uuid4().hex[:8]}"
    client = await init_db(settings.model_copy(update={"mongodb_uri": uri, "mongodb_db_name": db_name}))
    await UserDocument(id="U1").insert()
    store = MongoStore(client)
    yield store
    await client.drop_database(db_name)
    client.close()


def _txn(transaction_id="T1", points=150, payout=2.0):
    return PostbackTransaction(
        provider=CPX,
        transaction_id=transaction_id,
        user_id="U1",
        player_id="U1",
        payout=payout,
        points=points,
    )


def _entry(transaction_id="T1", amount=150, type="cpx_conversion"):
    return PointLedgerEntry(user_id="U1", amount=amount, type=type, source=CPX, transaction_id=transaction_id)


async def test_insert_transaction_is_create_if_absent(mongo_store):
    assert await mongo_store.insert_transaction(_txn(points=0)) is True
    assert await mongo_store.insert_transaction(_txn(points=0)) is False
    assert await mongo_store.transaction_exists(CPX, "T1")


async def test_apply_credit_once(mongo_store):
    assert await mongo_store.apply_credit(_txn(), _entry()) is True
    assert await mongo_store.apply_credit(_txn(), _entry()) is False

    user = await mongo_store.get_user("U1")
    assert user.points == 150
    assert user.lifetime_points == 150
    assert len(await mongo_store.ledger_entries("U1")) == 1
    account = await mongo_store.find_account(CPX, "U1")
    assert account.total_conversions == 1
    assert account.total_earnings == 2.0


async def test_reversal_compare_and_set_deducts_once(mongo_store):
    txn = _txn()
    await mongo_store.apply_credit(txn, _entry())
    reversal = _entry(amount=-150, type="cpx_reversal")

    first = await mongo_store.apply_reversal(txn, TransactionStatus.REVERSED, datetime.utcnow(), {"status": "2"}, reversal)
    second = await mongo_store.apply_reversal(txn, TransactionStatus.REVERSED, datetime.utcnow(), {"status": "2"}, reversal)
    assert (first, second) == (True, False)

    assert (await mongo_store.get_user("U1")).points == 0
    stored = await mongo_store.get_transaction(CPX, "T1")
    assert stored.status == TransactionStatus.REVERSED
    assert stored.reversal_payload == {"status": "2"}
    assert len(await mongo_store.ledger_entries("U1")) == 2
    assert (await mongo_store.find_account(CPX, "U1")).total_reversals == 1


async def test_unresolved_user_is_stored_pending(mongo_store, providers):
    ledger = LedgerApplier(mongo_store, providers)
    outcome = await ledger.apply(CPX, "T2", "ghost", "ghost", Decimal("2.00"), OfferMeta(raw={"trans_id": "T2"}))
    assert outcome.status == OutcomeStatus.USER_NOT_FOUND

    txn = await mongo_store.get_transaction(CPX, "T2")
    assert txn.status == TransactionStatus.PENDING
    assert txn.user_id is None
    assert await mongo_store.ledger_entries("ghost") == []

    again = await ledger.apply(CPX, "T2", "ghost", "ghost", Decimal("2.00"), OfferMeta())
    assert again.status == OutcomeStatus.DUPLICATE
