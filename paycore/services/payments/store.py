"""Persistence for payment records.

`PaymentStore` is the seam the lifecycle service talks to; the SQLAlchemy
implementation below is what the HTTP app wires in.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from sqlalchemy import func, select

from paycore.common.state_machine import PaymentStatus
from paycore.services.payments.models import Payment, PaymentTimeline


@dataclass(frozen=True)
class PageRequest:
    """Zero-based page number plus page size."""

    page: int = 0
    size: int = 20

    def __post_init__(self) -> None:
        if self.page < 0:
            raise ValueError("page must be >= 0")
        if self.size < 1:
            raise ValueError("size must be >= 1")

    @property
    def offset(self) -> int:
        return self.page * self.size


@dataclass
class Page:
    content: list[Payment]
    page: int
    size: int
    total_elements: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_elements / self.size) if self.size else 0


@dataclass(frozen=True)
class StatusChange:
    """One status transition to append to the timeline alongside a save."""

    from_state: PaymentStatus | None
    to_state: PaymentStatus
    reason: str
    at: datetime


class PaymentStore(Protocol):
    def save(self, payment: Payment, change: StatusChange | None = None) -> Payment: ...

    def find_by_id(self, payment_id: str) -> Payment | None: ...

    def find_all(self, page: PageRequest) -> Page: ...

    def find_by_merchant(self, merchant_id: str, page: PageRequest) -> Page: ...

    def find_by_filter(
        self,
        page: PageRequest,
        merchant_id: str | None = None,
        customer_id: str | None = None,
        status: PaymentStatus | None = None,
    ) -> Page: ...

    def timeline(self, payment_id: str) -> list[PaymentTimeline]: ...


class SqlAlchemyPaymentStore:
    """Stores payments through short-lived sessions from `session_factory`."""

    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory

    def save(self, payment: Payment, change: StatusChange | None = None) -> Payment:
        """Insert or update `payment` and its optional timeline row in one commit."""

        with self.session_factory() as db:
            merged = db.merge(payment)
            if change is not None:
                db.add(
                    PaymentTimeline(
                        payment_id=merged.id,
                        from_state=change.from_state,
                        to_state=change.to_state,
                        reason=change.reason,
                        created_at=change.at,
                    )
                )
            db.commit()
            return merged

    def find_by_id(self, payment_id: str) -> Payment | None:
        with self.session_factory() as db:
            return db.get(Payment, payment_id)

    def find_all(self, page: PageRequest) -> Page:
        return self.find_by_filter(page)

    def find_by_merchant(self, merchant_id: str, page: PageRequest) -> Page:
        return self.find_by_filter(page, merchant_id=merchant_id)

    def find_by_filter(
        self,
        page: PageRequest,
        merchant_id: str | None = None,
        customer_id: str | None = None,
        status: PaymentStatus | None = None,
    ) -> Page:
        """Return one page ordered by creation time, then id."""

        conditions = []
        if merchant_id is not None:
            conditions.append(Payment.merchant_id == merchant_id)
        if customer_id is not None:
            conditions.append(Payment.customer_id == customer_id)
        if status is not None:
            conditions.append(Payment.status == status)

        with self.session_factory() as db:
            total = db.execute(select(func.count()).select_from(Payment).where(*conditions)).scalar_one()
            rows = (
                db.execute(
                    select(Payment)
                    .where(*conditions)
                    .order_by(Payment.created_at, Payment.id)
                    .offset(page.offset)
                    .limit(page.size)
                )
                .scalars()
                .all()
            )
        return Page(content=list(rows), page=page.page, size=page.size, total_elements=total)

    def timeline(self, payment_id: str) -> list[PaymentTimeline]:
        with self.session_factory() as db:
            rows = db.execute(
                select(PaymentTimeline)
                .where(PaymentTimeline.payment_id == payment_id)
                .order_by(PaymentTimeline.id)
            ).scalars()
            return list(rows)
