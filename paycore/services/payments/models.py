"""Payments database models.

This DB is the source of truth for payment records and their status timeline.
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Integer, Numeric, String, TypeDecorator, func
from sqlalchemy.orm import Mapped, mapped_column

from paycore.common.db import Base
from paycore.common.state_machine import PaymentStatus


class UTCDateTime(TypeDecorator):
    """Timezone-aware timestamp that comes back as UTC even on SQLite."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


class Payment(Base):
    """Current state of one payment record."""

    __tablename__ = "payments"
    __table_args__ = (Index("ix_payments_merchant_created", "merchant_id", "created_at"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    currency: Mapped[str] = mapped_column(String(3))
    status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus, native_enum=False, length=20),
        default=PaymentStatus.PENDING,
        index=True,
    )
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    merchant_id: Mapped[str] = mapped_column(String, index=True)
    customer_id: Mapped[str] = mapped_column(String, index=True)
    card_last_four: Mapped[str | None] = mapped_column(String(4), nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String, nullable=True)
    reference_id: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)


class PaymentTimeline(Base):
    """Immutable audit trail of every status change."""

    __tablename__ = "payment_timeline"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    payment_id: Mapped[str] = mapped_column(ForeignKey("payments.id"), index=True)
    from_state: Mapped[PaymentStatus | None] = mapped_column(
        Enum(PaymentStatus, native_enum=False, length=20), nullable=True
    )
    to_state: Mapped[PaymentStatus] = mapped_column(Enum(PaymentStatus, native_enum=False, length=20))
    reason: Mapped[str] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), server_default=func.now())
