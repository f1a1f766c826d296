from typing import Any

from pydantic import BaseModel, Field, field_validator

from .decoder import is_hex_string


class RelayRequest(BaseModel):
    rawTransaction: str = Field(..., description="Raw signed transaction (0x-prefixed hex)")

    @field_validator("rawTransaction")
    @classmethod
    def validate_raw_transaction(cls, v):
        if not v.startswith("0x"):
            raise ValueError("rawTransaction must start with 0x")
        if not is_hex_string(v) or len(v) <= 2:
            raise ValueError("rawTransaction must be valid hex")
        return v


class RelayResponse(BaseModel):
    isValidSchema: bool
    isSponsored: bool


class BalanceResponse(BaseModel):
    address: str
    balance: str


class TransactionEntry(BaseModel):
    tx: dict[str, Any] | None
    status: str
    error: str | None
    created_at: int


class TransactionsResponse(BaseModel):
    transactions: list[TransactionEntry]


class HealthResponse(BaseModel):
    status: str
    relayer: str | None
