import httpx
import pytest
from stellar_sdk import Account, Asset, Keypair, Network, TransactionBuilder, TransactionEnvelope

from memo_ledger import __version__
from memo_ledger.services.errors import BadResponseError, NetworkError
from memo_ledger.services.horizon import BASE_FEE, HorizonServer


def _signed_envelope(keypair: Keypair) -> TransactionEnvelope:
    envelope = (
        TransactionBuilder(
            source_account=Account(keypair.public_key, 1),
            network_passphrase=Network.TESTNET_NETWORK_PASSPHRASE,
            base_fee=100,
        )
        .append_payment_op(destination=keypair.public_key, asset=Asset.native(), amount="1")
        .set_timeout(30)
        .build()
    )
    envelope.sign(keypair)
    return envelope


@pytest.mark.asyncio
async def test_load_account_reads_sequence(horizon, client_keypair):
    account_id = client_keypair.public_key
    horizon.add("GET", f"/accounts/{account_id}", {"id": account_id, "sequence": "4294967296"})

    account = await horizon.server().load_account(account_id)

    assert account.account.account_id == account_id
    assert account.sequence == 4294967296


@pytest.mark.asyncio
async def test_load_account_without_sequence_is_bad_response(horizon, client_keypair):
    account_id = client_keypair.public_key
    horizon.add("GET", f"/accounts/{account_id}", {"id": account_id})

    with pytest.raises(BadResponseError):
        await horizon.server().load_account(account_id)


@pytest.mark.asyncio
async def test_fetch_base_fee(horizon):
    horizon.add("GET", "/fee_stats", {"last_ledger_base_fee": "250"})

    assert await horizon.server().fetch_base_fee() == 250


@pytest.mark.asyncio
@pytest.mark.parametrize("reported", [None, "", "not-a-number"])
async def test_fetch_base_fee_falls_back(horizon, reported):
    horizon.add("GET", "/fee_stats", {"last_ledger_base_fee": reported})

    assert await horizon.server().fetch_base_fee() == BASE_FEE


@pytest.mark.asyncio
async def test_submit_transaction_posts_form(horizon, client_keypair):
    envelope = _signed_envelope(client_keypair)
    horizon.add("POST", "/transactions", {"hash": envelope.hash_hex(), "successful": True})

    result = await horizon.server().submit_transaction(envelope)

    assert result["successful"] is True
    assert horizon.form()["tx"] == envelope.to_xdr()


@pytest.mark.asyncio
async def test_rejected_submission_carries_result_codes(horizon, client_keypair):
    extras = {"extras": {"result_codes": {"transaction": "tx_bad_seq"}}}
    horizon.add("POST", "/transactions", extras, status=400)

    with pytest.raises(BadResponseError) as excinfo:
        await horizon.server().submit_transaction(_signed_envelope(client_keypair).to_xdr())

    assert excinfo.value.status == 400
    assert excinfo.value.response["extras"]["result_codes"]["transaction"] == "tx_bad_seq"


@pytest.mark.asyncio
async def test_submission_transport_failure(client_keypair):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    server = HorizonServer("https://horizon.test", client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

    with pytest.raises(NetworkError):
        await server.submit_transaction(_signed_envelope(client_keypair))


@pytest.mark.asyncio
async def test_default_client_identifies_itself():
    server = HorizonServer("https://horizon.test")
    try:
        assert server.client.headers["X-Client-Name"] == "memo-ledger"
        assert server.client.headers["X-Client-Version"] == __version__
    finally:
        await server.close()
