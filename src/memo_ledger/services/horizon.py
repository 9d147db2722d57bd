"""Horizon server facade and resource-specific call builders.

``HorizonServer`` owns the shared ``httpx.AsyncClient`` and hands out a
fresh builder per query, so builder state is never shared between callers:

    server = HorizonServer("https://horizon-testnet.stellar.org")
    page = await server.transactions().for_account(account_id).limit(10).call()
"""

from __future__ import annotations

import logging
from typing import Any, Self

import httpx
from stellar_sdk import Account, TransactionEnvelope

from memo_ledger import __version__
from memo_ledger.services.call_builder import CallBuilder
from memo_ledger.services.errors import (
    BadResponseError,
    ConfigurationError,
    NetworkError,
    check_response,
    response_body,
)

# Configure logger for this module
logger = logging.getLogger(__name__)

# HTTP status codes
HTTP_BAD_REQUEST = 400

# Fee in stroops used when the server does not report one
BASE_FEE = 100
CLIENT_NAME = "memo-ledger"

OFFER_RESOURCES = ("accounts",)


class AccountCallBuilder(CallBuilder):
    """Builder for the ``/accounts`` endpoints."""

    def __init__(self, server_url: str | httpx.URL, client: httpx.AsyncClient) -> None:
        super().__init__(server_url, client)
        self.add_segments("accounts")

    def account_id(self, account_id: str) -> Self:
        return self.add_filter("accounts", account_id)


class LedgerCallBuilder(CallBuilder):
    """Builder for the ``/ledgers`` endpoints."""

    def __init__(self, server_url: str | httpx.URL, client: httpx.AsyncClient) -> None:
        super().__init__(server_url, client)
        self.add_segments("ledgers")

    def ledger(self, sequence: int | str) -> Self:
        return self.add_filter("ledgers", sequence)


class TransactionCallBuilder(CallBuilder):
    """Builder for the ``/transactions`` endpoints."""

    def __init__(self, server_url: str | httpx.URL, client: httpx.AsyncClient) -> None:
        super().__init__(server_url, client)
        self.add_segments("transactions")

    def transaction(self, transaction_id: str) -> Self:
        return self.add_filter("transactions", transaction_id)

    def for_account(self, account_id: str) -> Self:
        return self.add_filter("accounts", account_id, "transactions")

    def for_ledger(self, sequence: int | str) -> Self:
        return self.add_filter("ledgers", sequence, "transactions")

    def include_failed(self, value: bool) -> Self:
        self.query["include_failed"] = str(bool(value)).lower()
        return self


class OperationCallBuilder(CallBuilder):
    """Builder for the ``/operations`` endpoints."""

    def __init__(self, server_url: str | httpx.URL, client: httpx.AsyncClient) -> None:
        super().__init__(server_url, client)
        self.add_segments("operations")

    def operation(self, operation_id: str) -> Self:
        return self.add_filter("operations", operation_id)

    def for_account(self, account_id: str) -> Self:
        return self.add_filter("accounts", account_id, "operations")

    def for_ledger(self, sequence: int | str) -> Self:
        return self.add_filter("ledgers", sequence, "operations")

    def for_transaction(self, transaction_id: str) -> Self:
        return self.add_filter("transactions", transaction_id, "operations")

    def include_failed(self, value: bool) -> Self:
        self.query["include_failed"] = str(bool(value)).lower()
        return self


class PaymentCallBuilder(CallBuilder):
    """Builder for the ``/payments`` endpoints."""

    def __init__(self, server_url: str | httpx.URL, client: httpx.AsyncClient) -> None:
        super().__init__(server_url, client)
        self.add_segments("payments")

    def for_account(self, account_id: str) -> Self:
        return self.add_filter("accounts", account_id, "payments")

    def for_ledger(self, sequence: int | str) -> Self:
        return self.add_filter("ledgers", sequence, "payments")

    def for_transaction(self, transaction_id: str) -> Self:
        return self.add_filter("transactions", transaction_id, "payments")


class EffectCallBuilder(CallBuilder):
    """Builder for the ``/effects`` endpoints."""

    def __init__(self, server_url: str | httpx.URL, client: httpx.AsyncClient) -> None:
        super().__init__(server_url, client)
        self.add_segments("effects")

    def for_account(self, account_id: str) -> Self:
        return self.add_filter("accounts", account_id, "effects")

    def for_ledger(self, sequence: int | str) -> Self:
        return self.add_filter("ledgers", sequence, "effects")

    def for_transaction(self, transaction_id: str) -> Self:
        return self.add_filter("transactions", transaction_id, "effects")

    def for_operation(self, operation_id: str) -> Self:
        return self.add_filter("operations", operation_id, "effects")


class OfferCallBuilder(CallBuilder):
    """Builder for offers owned by a resource, e.g. ``/accounts/{id}/offers``."""

    def __init__(
        self,
        server_url: str | httpx.URL,
        client: httpx.AsyncClient,
        resource: str,
        *resource_params: str,
    ) -> None:
        super().__init__(server_url, client)
        if resource not in OFFER_RESOURCES:
            raise ConfigurationError("Bad resource specified for offer", resource)
        self.add_segments(resource, *resource_params, "offers")


class HorizonServer:
    """Entry point for queries and submissions against one Horizon server.

    Args:
        server_url: Base URL of the Horizon server.
        timeout_seconds: Per-request timeout for the default client.
        client: Optional pre-configured client; injected in tests.
    """

    def __init__(
        self,
        server_url: str,
        *,
        timeout_seconds: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.server_url = httpx.URL(server_url)
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds),
            headers={
                "X-Client-Name": CLIENT_NAME,
                "X-Client-Version": __version__,
            },
        )

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client

    def accounts(self) -> AccountCallBuilder:
        return AccountCallBuilder(self.server_url, self._client)

    def ledgers(self) -> LedgerCallBuilder:
        return LedgerCallBuilder(self.server_url, self._client)

    def transactions(self) -> TransactionCallBuilder:
        return TransactionCallBuilder(self.server_url, self._client)

    def operations(self) -> OperationCallBuilder:
        return OperationCallBuilder(self.server_url, self._client)

    def payments(self) -> PaymentCallBuilder:
        return PaymentCallBuilder(self.server_url, self._client)

    def effects(self) -> EffectCallBuilder:
        return EffectCallBuilder(self.server_url, self._client)

    def offers(self, resource: str, *resource_params: str) -> OfferCallBuilder:
        return OfferCallBuilder(self.server_url, self._client, resource, *resource_params)

    async def fee_stats(self) -> dict[str, Any]:
        record = await CallBuilder(self.server_url, self._client).add_segments("fee_stats").call()
        if not isinstance(record, dict):
            raise BadResponseError("Unexpected fee stats response")
        return record

    async def fetch_base_fee(self) -> int:
        """Return the last ledger's base fee, falling back to ``BASE_FEE``."""
        stats = await self.fee_stats()
        try:
            return int(stats.get("last_ledger_base_fee") or BASE_FEE)
        except (TypeError, ValueError):
            logger.warning("Unparseable base fee %r; using %d", stats.get("last_ledger_base_fee"), BASE_FEE)
            return BASE_FEE

    async def load_account(self, account_id: str) -> Account:
        """Fetch an account and return it with its current sequence number."""
        record = await self.accounts().account_id(account_id).call()
        if not isinstance(record, dict) or "sequence" not in record:
            raise BadResponseError(f"Account {account_id} response has no sequence", response=record)
        return Account(account_id, int(record["sequence"]))

    async def submit_transaction(self, envelope: TransactionEnvelope | str) -> dict[str, Any]:
        """Submit a signed envelope and return the ledger's result record.

        Raises:
            BadResponseError: If the ledger rejected the transaction (HTTP 400);
                ``response`` carries the result codes.
            NetworkError: For any other failure.
        """
        tx_xdr = envelope if isinstance(envelope, str) else envelope.to_xdr()
        base_path = self.server_url.path.rstrip("/")
        url = self.server_url.copy_with(path=f"{base_path}/transactions")

        logger.debug("POST %s", url)
        try:
            response = await self._client.post(url, data={"tx": tx_xdr})
        except httpx.HTTPError as exc:
            raise NetworkError(f"Transaction submission to {url} failed: {exc}") from exc

        if response.status_code == HTTP_BAD_REQUEST:
            raise BadResponseError(
                "Transaction submission failed",
                status=response.status_code,
                response=response_body(response),
            )
        body = check_response(response)
        if not isinstance(body, dict):
            raise BadResponseError("Unexpected submission response", response=body)
        return body

    async def close(self) -> None:
        await self._client.aclose()
