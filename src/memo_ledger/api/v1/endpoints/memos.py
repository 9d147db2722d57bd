# src/memo_ledger/api/v1/endpoints/memos.py
"""Memo submission and history endpoints."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, status

from memo_ledger.api.v1.dependencies import CurrentAccountDep, MemoLedgerDep
from memo_ledger.core.settings import settings
from memo_ledger.schemas.memo import MemoPayload, MemoReceipt
from memo_ledger.services.errors import ConfigurationError, NetworkError

# Configure logger for this module
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/memos", tags=["memos"])


@router.get("", summary="List recorded memos, oldest first")
async def list_memos(ledger: MemoLedgerDep) -> list[dict[str, Any]]:
    try:
        return await ledger.history(settings.memo_page_size)
    except NetworkError as err:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(err),
        ) from err


@router.post(
    "",
    summary="Record a memo on the ledger",
    status_code=status.HTTP_201_CREATED,
    response_model=MemoReceipt,
)
async def create_memo(
    payload: MemoPayload,
    ledger: MemoLedgerDep,
    account: CurrentAccountDep,
) -> MemoReceipt:
    """Submit ``payload`` and return the link of the latest recorded memo.

    ``r`` is None when the history could not be re-read after submission.
    """
    try:
        result = await ledger.submit(payload)
    except ConfigurationError as err:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(err),
        ) from err
    except NetworkError as err:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(err),
        ) from err

    logger.info("Account %s recorded memo in %s", account, result.get("hash"))

    # The memo is on the ledger; a failed re-read only loses the link.
    try:
        history = await ledger.history(settings.memo_page_size)
    except NetworkError as err:
        logger.warning("Recorded memo but could not re-read history: %s", err)
        history = []
    latest = history[-1] if history else {}
    return MemoReceipt(hash=str(result.get("hash", "")), r=latest.get("r"))
