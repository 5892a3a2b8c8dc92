"""API request/response schemas for the payments endpoints.

Fields are snake_case in Python and camelCase on the wire.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, field_validator
from pydantic.alias_generators import to_camel

from paycore.common.state_machine import PaymentStatus


# Amounts are stored as two-decimal Decimals and sent as JSON numbers.
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PaymentCreateRequest(CamelModel):
    """Payment creation payload."""

    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    currency: str = Field(min_length=3, max_length=3, pattern=r"^[A-Za-z]{3}$")
    description: str | None = Field(default=None, max_length=500)
    merchant_id: str = Field(min_length=1)
    customer_id: str = Field(min_length=1)
    card_last_four: str | None = Field(default=None, pattern=r"^[0-9]{4}$")
    payment_method: str | None = None
    reference_id: str | None = None

    @field_validator("merchant_id", "customer_id")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value


class PaymentUpdateRequest(CamelModel):
    """Partial update payload; omitted or null fields leave the record untouched."""

    amount: Decimal | None = Field(default=None, gt=0, max_digits=12, decimal_places=2)
    currency: str | None = Field(default=None, min_length=3, max_length=3, pattern=r"^[A-Za-z]{3}$")
    description: str | None = Field(default=None, max_length=500)
    card_last_four: str | None = Field(default=None, pattern=r"^[0-9]{4}$")
    payment_method: str | None = None
    reference_id: str | None = None


class PaymentResponse(CamelModel):
    """Full payment record as returned to clients."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    amount: Money
    currency: str
    status: PaymentStatus
    description: str | None = None
    merchant_id: str
    customer_id: str
    card_last_four: str | None = None
    payment_method: str | None = None
    reference_id: str | None = None
    created_at: datetime
    updated_at: datetime | None = None
    processed_at: datetime | None = None


class PaymentPage(CamelModel):
    content: list[PaymentResponse]
    page: int
    size: int
    total_elements: int
    total_pages: int


class TimelineEntry(CamelModel):
    """One status change from the payment's audit trail."""

    model_config = ConfigDict(from_attributes=True)

    from_state: PaymentStatus | None
    to_state: PaymentStatus
    reason: str
    created_at: datetime


class ErrorResponse(CamelModel):
    status: int
    error: str
    message: str
    timestamp: datetime


class ValidationErrorResponse(ErrorResponse):
    field_errors: dict[str, str]
