"""SEP-10 style challenge transactions.

The server builds a transaction that can never be applied to the ledger
(sequence number 0) carrying a random nonce in a single ``manageData``
operation whose source is the client account. The client co-signs it and
sends it back; the server then checks structure, both signatures and the
time bounds. No nonce store backs the protocol, so freshness relies on the
time bounds alone.
"""

from __future__ import annotations

import base64
import binascii
import logging
import secrets
import time

from stellar_sdk import Account, Keypair, ManageData, TransactionBuilder, TransactionEnvelope
from stellar_sdk.exceptions import BadSignatureError

from memo_ledger.services.errors import InvalidChallengeError

# Configure logger for this module
logger = logging.getLogger(__name__)

CHALLENGE_NONCE_BYTES = 48
DEFAULT_CHALLENGE_TIMEOUT = 300
CHALLENGE_BASE_FEE = 100

# Built with -1 so the builder's sequence increment lands on 0.
CHALLENGE_SEQUENCE = -1


def build_challenge(
    server_keypair: Keypair,
    client_account_id: str,
    realm_name: str,
    network_passphrase: str,
    timeout: int = DEFAULT_CHALLENGE_TIMEOUT,
    *,
    now: int | None = None,
) -> str:
    """Build a server-signed challenge transaction.

    Args:
        server_keypair: Server signing key; its account is the transaction source.
        client_account_id: Account that must co-sign; becomes the operation source.
        realm_name: Prefix of the data entry name (``"{realm_name} auth"``).
        network_passphrase: Network the signatures are bound to.
        timeout: Seconds the challenge stays valid.
        now: Unix time to start the validity window at. Defaults to the clock.

    Returns:
        Base64 XDR of the signed transaction envelope.
    """
    if now is None:
        now = int(time.time())

    server_account = Account(server_keypair.public_key, CHALLENGE_SEQUENCE)
    nonce = base64.b64encode(secrets.token_bytes(CHALLENGE_NONCE_BYTES))

    envelope = (
        TransactionBuilder(
            source_account=server_account,
            network_passphrase=network_passphrase,
            base_fee=CHALLENGE_BASE_FEE,
        )
        .add_time_bounds(now, now + timeout)
        .append_manage_data_op(
            data_name=f"{realm_name} auth",
            data_value=nonce,
            source=client_account_id,
        )
        .build()
    )
    envelope.sign(server_keypair)
    logger.debug("Issued challenge for %s valid until %d", client_account_id, now + timeout)
    return envelope.to_xdr()


def read_challenge(challenge: str, network_passphrase: str) -> TransactionEnvelope:
    """Decode a challenge envelope.

    Raises:
        InvalidChallengeError: If the payload is not a transaction envelope.
    """
    try:
        return TransactionEnvelope.from_xdr(challenge, network_passphrase)
    except Exception as err:
        raise InvalidChallengeError(f"The transaction envelope could not be decoded: {err}") from err


def verify_challenge(
    challenge: str,
    server_account_id: str,
    network_passphrase: str,
    *,
    now: int | None = None,
) -> bool:
    """Verify a client-signed challenge transaction.

    Checks run in a fixed order and the first failure wins.

    Returns:
        True when every check passes.

    Raises:
        InvalidChallengeError: Naming the failed check.
    """
    envelope = read_challenge(challenge, network_passphrase)
    transaction = envelope.transaction

    if int(transaction.sequence) != 0:
        raise InvalidChallengeError("The transaction sequence number should be zero")

    if transaction.source.account_id != server_account_id:
        raise InvalidChallengeError(
            "The transaction source account is not equal to the server's account"
        )

    if len(transaction.operations) != 1:
        raise InvalidChallengeError("The transaction should contain only one operation")

    operation = transaction.operations[0]
    if operation.source is None:
        raise InvalidChallengeError(
            "The transaction's operation should contain a source account"
        )

    if not isinstance(operation, ManageData):
        raise InvalidChallengeError("The transaction's operation should be manageData")

    # The wording says 64 bytes (the encoded length); the check is on the
    # 48 decoded nonce bytes.
    if not _is_challenge_nonce(operation.data_value):
        raise InvalidChallengeError(
            "The transaction's operation value should be a 64 bytes base64 random string"
        )

    if not verify_signed_by(envelope, server_account_id):
        raise InvalidChallengeError("The transaction is not signed by the server")

    if not verify_signed_by(envelope, operation.source.account_id):
        raise InvalidChallengeError("The transaction is not signed by the client")

    if not _within_time_bounds(envelope, int(time.time()) if now is None else now):
        raise InvalidChallengeError("The transaction has expired")

    return True


def verify_signed_by(envelope: TransactionEnvelope, account_id: str) -> bool:
    """Return True if any signature on ``envelope`` verifies for ``account_id``."""
    try:
        keypair = Keypair.from_public_key(account_id)
    except ValueError:
        return False

    signature_base_hash = envelope.hash()
    for decorated in envelope.signatures:
        try:
            keypair.verify(signature_base_hash, decorated.signature)
        except BadSignatureError:
            continue
        return True
    return False


def _is_challenge_nonce(value: bytes | None) -> bool:
    if not value:
        return False
    try:
        decoded = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        return False
    return len(decoded) == CHALLENGE_NONCE_BYTES


def _within_time_bounds(envelope: TransactionEnvelope, now: int) -> bool:
    preconditions = envelope.transaction.preconditions
    time_bounds = preconditions.time_bounds if preconditions is not None else None
    if time_bounds is None:
        return False
    return time_bounds.min_time <= now <= time_bounds.max_time
