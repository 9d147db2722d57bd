"""Structured payloads carried in transaction text memos."""

from pydantic import BaseModel, ConfigDict, Field


class MemoPayload(BaseModel):
    """A user/amount pair recorded on the ledger as a compact JSON memo.

    Serialised with the short aliases (``{"u":"alice","a":"5"}``) so that
    it fits the 28-byte text memo limit.
    """

    user: str = Field(..., alias="u", min_length=1)
    amount: str = Field(..., alias="a", min_length=1)

    model_config = ConfigDict(populate_by_name=True)

    def to_memo(self) -> str:
        return self.model_dump_json(by_alias=True)


class MemoReceipt(BaseModel):
    """Result of recording a memo."""

    hash: str = Field(..., description="Hash of the submitted transaction")
    r: str | None = Field(None, description="Link to the latest recorded memo transaction")
