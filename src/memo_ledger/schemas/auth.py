"""Challenge/response authentication schemas."""

from pydantic import BaseModel, Field


class ChallengeResponse(BaseModel):
    """Server-signed challenge handed to a client account."""

    transaction: str = Field(..., description="Base64 XDR of the challenge transaction envelope")
    network_passphrase: str = Field(..., description="Network the challenge is bound to")


class ChallengeSubmission(BaseModel):
    """Client co-signed challenge returned for verification."""

    transaction: str = Field(..., description="Base64 XDR signed by both server and client")


class TokenResponse(BaseModel):
    token: str
    token_type: str = "bearer"
