from decimal import Decimal

import pytest
from stellar_sdk import Network, Payment, TransactionEnvelope

from memo_ledger.schemas.memo import MemoPayload
from memo_ledger.services.errors import MemoError
from memo_ledger.services.memos import MemoLedger, decode_memo_record
from tests.conftest import HORIZON_URL, collection

PASSPHRASE = Network.TESTNET_NETWORK_PASSPHRASE


def _transaction(tx_id: str, memo: str | None, memo_type: str = "text") -> dict:
    record = {
        "id": tx_id,
        "hash": tx_id,
        "paging_token": tx_id,
        "memo_type": memo_type,
        "_links": {"self": {"href": f"{HORIZON_URL}/transactions/{tx_id}"}},
    }
    if memo is not None:
        record["memo"] = memo
    return record


@pytest.fixture()
def ledger(horizon, client_keypair) -> MemoLedger:
    return MemoLedger(horizon.server(), client_keypair, PASSPHRASE, "0.0000001")


def test_payload_encodes_with_short_keys():
    assert MemoPayload(user="alice", amount="5").to_memo() == '{"u":"alice","a":"5"}'
    assert MemoPayload.model_validate({"u": "bob", "a": "1"}).user == "bob"


@pytest.mark.asyncio
async def test_submit_records_memo_payment(horizon, ledger, client_keypair):
    account_id = client_keypair.public_key
    horizon.add("GET", f"/accounts/{account_id}", {"id": account_id, "sequence": "100"})
    horizon.add("GET", "/fee_stats", {"last_ledger_base_fee": "200"})
    horizon.add("POST", "/transactions", {"hash": "deadbeef", "successful": True})

    result = await ledger.submit(MemoPayload(user="alice", amount="5"))

    assert result["hash"] == "deadbeef"
    envelope = TransactionEnvelope.from_xdr(horizon.form()["tx"], PASSPHRASE)
    transaction = envelope.transaction
    payment = transaction.operations[0]

    assert transaction.memo.memo_text == b'{"u":"alice","a":"5"}'
    assert transaction.sequence == 101
    assert transaction.fee == 200
    assert isinstance(payment, Payment)
    assert payment.destination.account_id == account_id
    assert Decimal(payment.amount) == Decimal("0.0000001")
    assert client_keypair.verify(envelope.hash(), envelope.signatures[0].signature) is None


@pytest.mark.asyncio
async def test_oversized_memo_fails_before_network(horizon, ledger):
    with pytest.raises(MemoError):
        await ledger.submit(MemoPayload(user="a-rather-long-user-name", amount="1000"))

    assert horizon.requests == []


@pytest.mark.asyncio
async def test_history_pages_until_empty(horizon, ledger, client_keypair):
    path = f"/accounts/{client_keypair.public_key}/transactions"
    page_two = f"{HORIZON_URL}{path}?cursor=b&limit=2&order=asc"
    page_three = f"{HORIZON_URL}{path}?cursor=d&limit=2&order=asc"
    horizon.add(
        "GET",
        path,
        collection([_transaction("a", '{"u":"alice","a":"5"}'), _transaction("b", "hello")], page_two),
        params={"order": "asc", "limit": "2"},
    )
    horizon.add(
        "GET",
        path,
        collection([_transaction("c", '{"u":"bob","a":"2"}'), _transaction("d", "[1]")], page_three),
        params={"cursor": "b", "order": "asc", "limit": "2"},
    )
    horizon.add("GET", path, collection([], page_three), params={"cursor": "d", "order": "asc", "limit": "2"})

    history = await ledger.history(page_size=2)

    assert history == [
        {"u": "alice", "a": "5", "r": f"{HORIZON_URL}/transactions/a"},
        {"u": "bob", "a": "2", "r": f"{HORIZON_URL}/transactions/c"},
    ]
    assert len(horizon.requests) == 3


def test_decode_memo_record_skips_non_text_memos():
    assert decode_memo_record(_transaction("x", None, memo_type="none")) is None
    assert decode_memo_record(_transaction("x", "AAAA", memo_type="hash")) is None
    assert decode_memo_record(_transaction("x", "not json")) is None
