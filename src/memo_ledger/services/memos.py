"""Record user/amount payloads as text memos and read them back.

Each submission is a minimal native-asset payment from the service account
to itself whose text memo holds the compact JSON payload. History is the
account's transaction list, oldest first, filtered to memos that decode as
JSON objects.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from stellar_sdk import Asset, Keypair, TransactionBuilder

from memo_ledger.schemas.memo import MemoPayload
from memo_ledger.services.call_builder import CollectionPage, Relation
from memo_ledger.services.errors import BadResponseError, MemoError
from memo_ledger.services.horizon import HorizonServer

# Configure logger for this module
logger = logging.getLogger(__name__)

MAX_TEXT_MEMO_BYTES = 28
TRANSACTION_TIMEOUT_SECONDS = 30


def decode_memo_record(record: dict[str, Any]) -> dict[str, Any] | None:
    """Return the memo of a transaction record as a dict, or None.

    The decoded object gains an ``r`` key holding the transaction's self link.
    """
    if record.get("memo_type") not in (None, "text"):
        return None
    memo = record.get("memo")
    if not isinstance(memo, str) or not memo:
        return None
    try:
        decoded = json.loads(memo)
    except ValueError:
        decoded = None
    if not isinstance(decoded, dict):
        logger.warning("Skipping transaction %s: memo is not a JSON object", record.get("id"))
        return None

    link = record.get("self")
    if isinstance(link, Relation):
        decoded["r"] = link.href
    return decoded


class MemoLedger:
    """Memo submission and history for one service account.

    Args:
        server: Horizon facade used for queries and submission.
        keypair: Service account key; source, destination and signer.
        network_passphrase: Network transactions are signed for.
        payment_amount: Native amount of the self-payment carrying the memo.
    """

    def __init__(
        self,
        server: HorizonServer,
        keypair: Keypair,
        network_passphrase: str,
        payment_amount: str = "0.0000001",
    ) -> None:
        self.server = server
        self.keypair = keypair
        self.network_passphrase = network_passphrase
        self.payment_amount = payment_amount

    @property
    def account_id(self) -> str:
        return self.keypair.public_key

    async def submit(self, payload: MemoPayload) -> dict[str, Any]:
        """Record ``payload`` on the ledger and return the submission result.

        Raises:
            MemoError: If the encoded payload exceeds the text memo limit.
            BadResponseError: If the ledger rejected the transaction.
            NetworkError: For transport or server failures.
        """
        memo = payload.to_memo()
        if len(memo.encode("utf-8")) > MAX_TEXT_MEMO_BYTES:
            raise MemoError(
                f"Memo is longer than {MAX_TEXT_MEMO_BYTES} bytes",
                memo,
            )

        account = await self.server.load_account(self.account_id)
        fee = await self.server.fetch_base_fee()

        envelope = (
            TransactionBuilder(
                source_account=account,
                network_passphrase=self.network_passphrase,
                base_fee=fee,
            )
            .add_text_memo(memo)
            .append_payment_op(
                destination=self.account_id,
                asset=Asset.native(),
                amount=self.payment_amount,
            )
            .set_timeout(TRANSACTION_TIMEOUT_SECONDS)
            .build()
        )
        envelope.sign(self.keypair)

        result = await self.server.submit_transaction(envelope)
        logger.info("Recorded memo %s in transaction %s", memo, result.get("hash"))
        return result

    async def history(self, page_size: int = 50) -> list[dict[str, Any]]:
        """Return every decodable memo on the account, oldest first."""
        page = await (
            self.server.transactions()
            .for_account(self.account_id)
            .order("asc")
            .limit(page_size)
            .call()
        )
        if not isinstance(page, CollectionPage):
            raise BadResponseError("Expected a page of transactions")

        history: list[dict[str, Any]] = []
        while page.records:
            for record in page.records:
                decoded = decode_memo_record(record)
                if decoded is not None:
                    history.append(decoded)
            page = await page.next()
        return history
