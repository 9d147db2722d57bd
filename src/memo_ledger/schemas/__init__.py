"""
Pydantic schemas for API request/response models and memo payloads.
"""

from .auth import ChallengeResponse, ChallengeSubmission, TokenResponse
from .memo import MemoPayload, MemoReceipt

__all__ = [
    "ChallengeResponse", "ChallengeSubmission", "TokenResponse",
    "MemoPayload", "MemoReceipt",
]
