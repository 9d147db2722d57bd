# src/memo_ledger/api/v1/endpoints/auth.py
"""Challenge/response authentication endpoints for the Memo Ledger API."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, status
from jose import jwt
from stellar_sdk import Keypair

from memo_ledger.api.v1.dependencies import ServerKeypairDep
from memo_ledger.core.settings import settings
from memo_ledger.schemas.auth import ChallengeResponse, ChallengeSubmission, TokenResponse
from memo_ledger.services.challenge import build_challenge, read_challenge, verify_challenge
from memo_ledger.services.errors import InvalidChallengeError

# Configure logger for this module
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])


def create_access_token(subject: str, extra_claims: dict[str, str] | None = None) -> str:
    """Create JWT access token for an authenticated account."""
    to_encode: dict[str, object] = {"sub": subject}
    if extra_claims:
        to_encode.update(extra_claims)
    expire = datetime.now(UTC) + timedelta(minutes=settings.access_token_expire_minutes)
    to_encode["exp"] = expire
    encoded_jwt: str = jwt.encode(
        to_encode,
        settings.secret_key,
        algorithm=settings.jwt_algorithm,
    )
    return encoded_jwt


@router.get(
    "",
    summary="Issue a challenge transaction for an account",
    response_model=ChallengeResponse,
)
async def issue_challenge(
    account: Annotated[str, Query(description="Client account id (G...)")],
    server_keypair: ServerKeypairDep,
) -> ChallengeResponse:
    """Return a server-signed challenge the client must co-sign."""
    try:
        Keypair.from_public_key(account)
    except ValueError as err:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid account id",
        ) from err

    transaction = build_challenge(
        server_keypair,
        account,
        settings.home_domain,
        settings.network_passphrase,
        settings.challenge_timeout_seconds,
    )
    return ChallengeResponse(
        transaction=transaction,
        network_passphrase=settings.network_passphrase,
    )


@router.post(
    "",
    summary="Exchange a co-signed challenge for an access token",
    response_model=TokenResponse,
)
async def submit_challenge(
    payload: ChallengeSubmission,
    server_keypair: ServerKeypairDep,
) -> TokenResponse:
    """Verify a co-signed challenge and issue a token for the client account."""
    try:
        verify_challenge(
            payload.transaction,
            server_keypair.public_key,
            settings.network_passphrase,
        )
    except InvalidChallengeError as err:
        logger.info("Rejected challenge: %s", err)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(err),
        ) from err

    envelope = read_challenge(payload.transaction, settings.network_passphrase)
    client_account_id = envelope.transaction.operations[0].source.account_id
    logger.info("Authenticated account %s", client_account_id)
    return TokenResponse(token=create_access_token(client_account_id))
