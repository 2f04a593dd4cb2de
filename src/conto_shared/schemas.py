"""
Pydantic schemas for request validation.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator

from conto_shared.constants import MAX_CUSTOMER_COUNT


class SettleRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    line_ids: list[str] = Field(default_factory=list)
    fingerprint: str | None = Field(default=None, max_length=64)

    @field_validator("line_ids")
    @classmethod
    def strip_ids(cls, value: list[str]) -> list[str]:
        return [line_id.strip() for line_id in value if line_id and line_id.strip()]


class SettleAllRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    fingerprint: str | None = Field(default=None, max_length=64)


class CloseSessionRequest(BaseModel):
    force: bool = False
    reason: str | None = Field(default=None, max_length=500)

    @field_validator("reason")
    @classmethod
    def blank_reason_is_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None


class ActivateTableRequest(BaseModel):
    # Range checks happen in the service so they surface as InvalidCustomerCount
    customer_count: int
    cover_enabled: bool | None = None
    ayce_enabled: bool | None = None


class UpdateCustomerCountRequest(BaseModel):
    customer_count: int


class SplitQuery(BaseModel):
    people: int | None = Field(default=None, ge=1, le=MAX_CUSTOMER_COUNT)
