"""Dispatcher state machine without HTTP."""

import asyncio

import orjson
import pytest

from app.core.exceptions import AuthenticationError, NotFoundError, StoreError, ValidationError
from app.services.outcomes import OutcomeStatus
from app.services.postbacks import PostbackDispatcher
from app.services.providers import ADGEM, CPX, parse_adgem, parse_cpx
from tests.helpers import adgem_body, cpx_params, sign

pytestmark = pytest.mark.asyncio


def cpx(providers, **kwargs):
    return parse_cpx(cpx_params(**kwargs), providers[CPX])


async def test_completion_then_replay_then_reversal(store, dispatcher, providers):
    result = await dispatcher.dispatch(cpx(providers))
    assert result.ok
    assert result.outcome.status == OutcomeStatus.CREDITED
    assert result.outcome.points == 150

    for _ in range(3):
        again = await dispatcher.dispatch(cpx(providers))
        assert again.outcome.status == OutcomeStatus.DUPLICATE
    assert (await store.get_user("U1")).points == 150
    assert len(store.transactions) == 1

    reversal = await dispatcher.dispatch(cpx(providers, status="2", amount=None))
    assert reversal.outcome.status == OutcomeStatus.REVERSED
    assert reversal.outcome.points == 150
    assert (await store.get_user("U1")).points == 0


async def test_concurrent_deliveries_credit_once(store, dispatcher, providers):
    results = await asyncio.gather(*(dispatcher.dispatch(cpx(providers)) for _ in range(5)))
    statuses = sorted(r.outcome.status.value for r in results)
    assert statuses.count(OutcomeStatus.CREDITED.value) == 1
    assert statuses.count(OutcomeStatus.DUPLICATE.value) == 4
    assert (await store.get_user("U1")).points == 150
    assert len(await store.ledger_entries("U1")) == 1


async def test_bad_hash_rejected_before_any_store_access(store, dispatcher, providers):
    n = cpx(providers)
    n.credential = "0" * 32
    with pytest.raises(AuthenticationError) as exc:
        await dispatcher.dispatch(n)
    assert exc.value.status_code == 403
    assert store.transactions == {}
    assert (await store.get_user("U1")).points == 0


async def test_hash_for_other_transaction_rejected(store, dispatcher, providers):
    params = cpx_params("T1")
    params["trans_id"] = "T2"
    with pytest.raises(AuthenticationError):
        await dispatcher.dispatch(parse_cpx(params, providers[CPX]))
    assert store.transactions == {}


async def test_adgem_signed_conversion(store, dispatcher):
    store.add_user("U9")
    body = adgem_body(user_id="U9")
    raw = orjson.dumps(body)
    result = await dispatcher.dispatch(parse_adgem(body, sign(raw)), raw_body=raw)
    assert result.outcome.status == OutcomeStatus.CREDITED
    assert result.outcome.points == 150
    assert (await store.find_account(ADGEM, "P1")).user_id == "U9"


async def test_adgem_tampered_body_rejected(store, dispatcher):
    body = adgem_body(user_id="U1")
    signature = sign(orjson.dumps(body))
    tampered = dict(body, payout=999)
    raw = orjson.dumps(tampered)
    with pytest.raises(AuthenticationError) as exc:
        await dispatcher.dispatch(parse_adgem(tampered, signature), raw_body=raw)
    assert exc.value.status_code == 401
    assert store.transactions == {}


async def test_adgem_unsigned_accepted_when_allowed(store, dispatcher):
    result = await dispatcher.dispatch(parse_adgem(adgem_body(user_id="U1")), raw_body=b"")
    assert result.outcome.status == OutcomeStatus.CREDITED


async def test_adgem_unsigned_rejected_when_required(store, providers):
    providers[ADGEM].allow_unsigned = False
    strict = PostbackDispatcher(store, providers)
    with pytest.raises(AuthenticationError):
        await strict.dispatch(parse_adgem(adgem_body(user_id="U1")))
    assert store.transactions == {}


async def test_missing_transaction_id_is_validation_error(store, dispatcher):
    body = adgem_body(user_id="U1")
    del body["conversion_id"]
    with pytest.raises(ValidationError):
        await dispatcher.dispatch(parse_adgem(body))


async def test_test_and_unknown_events_do_not_touch_the_store(store, dispatcher):
    test = await dispatcher.dispatch(parse_adgem({"event": "test"}))
    assert test.outcome.status == OutcomeStatus.TEST
    ignored = await dispatcher.dispatch(parse_adgem(adgem_body(event="click", user_id="U1")))
    assert ignored.outcome.status == OutcomeStatus.IGNORED
    assert store.transactions == {}
    assert store.ledger == []


async def test_unknown_cpx_status_is_ignored(store, dispatcher, providers):
    result = await dispatcher.dispatch(cpx(providers, status="3"))
    assert result.outcome.status == OutcomeStatus.IGNORED
    assert store.transactions == {}


async def test_store_failure_becomes_diagnostic(store, dispatcher, providers, monkeypatch):
    async def boom(*args, **kwargs):
        raise StoreError("connection reset")

    monkeypatch.setattr(store, "apply_credit", boom)
    result = await dispatcher.dispatch(cpx(providers))
    assert not result.ok
    assert result.outcome is None
    assert result.diagnostic.code == "STORE_ERROR"
    assert result.diagnostic.exc_type == "StoreError"
    assert (await store.get_user("U1")).points == 0


async def test_disabled_provider(store, providers):
    only_cpx = PostbackDispatcher(store, {CPX: providers[CPX]})
    with pytest.raises(NotFoundError):
        await only_cpx.dispatch(parse_adgem(adgem_body()))
