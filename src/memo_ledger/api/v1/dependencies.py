"""Shared API dependencies for authentication and ledger access."""

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from stellar_sdk import Keypair

from memo_ledger.core.settings import settings
from memo_ledger.services.horizon import HorizonServer
from memo_ledger.services.memos import MemoLedger

# Configure logger for this module
logger = logging.getLogger(__name__)

# HTTP Bearer scheme for JWT authentication
bearer_scheme = HTTPBearer()


class _HorizonServerSingleton:
    """Singleton wrapper for the configured HorizonServer."""

    _instance: HorizonServer | None = None

    @classmethod
    def get_instance(cls) -> HorizonServer:
        if cls._instance is None:
            cls._instance = HorizonServer(
                settings.horizon_url,
                timeout_seconds=settings.horizon_http_timeout_seconds,
            )
        return cls._instance

    @classmethod
    async def close(cls) -> None:
        if cls._instance is not None:
            await cls._instance.close()
            cls._instance = None


def get_horizon_server() -> HorizonServer:
    """Return the shared Horizon server facade."""
    return _HorizonServerSingleton.get_instance()


async def close_horizon_server() -> None:
    await _HorizonServerSingleton.close()


def get_server_keypair() -> Keypair:
    """Return the configured server signing key.

    Raises:
        HTTPException: 503 when no usable key is configured.
    """
    if not settings.server_secret_seed:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Server signing key is not configured",
        )
    try:
        return Keypair.from_secret(settings.server_secret_seed)
    except ValueError as err:
        logger.error("SERVER_SECRET_SEED is not a valid secret seed")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Server signing key is not configured",
        ) from err


HorizonServerDep = Annotated[HorizonServer, Depends(get_horizon_server)]
ServerKeypairDep = Annotated[Keypair, Depends(get_server_keypair)]


def get_memo_ledger(server: HorizonServerDep, keypair: ServerKeypairDep) -> MemoLedger:
    """Build a memo ledger for the server account."""
    return MemoLedger(
        server,
        keypair,
        settings.network_passphrase,
        settings.memo_payment_amount,
    )


def get_current_account(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
) -> str:
    """Return the account id a bearer token was issued to.

    Raises:
        HTTPException: If the token is invalid or has no subject.
    """
    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as err:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        ) from err

    subject = payload.get("sub")
    if not subject:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )
    return str(subject)


MemoLedgerDep = Annotated[MemoLedger, Depends(get_memo_ledger)]
CurrentAccountDep = Annotated[str, Depends(get_current_account)]
