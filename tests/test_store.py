"""SQLAlchemy store: persistence, paging and timeline rows."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from paycore.common.state_machine import PaymentStatus
from paycore.services.payments.models import Payment
from paycore.services.payments.store import Page, PageRequest, StatusChange

T0 = datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)


def _payment(merchant_id="m1", created_at=T0, **overrides) -> Payment:
    fields = dict(
        id=str(uuid4()),
        amount=Decimal("10.00"),
        currency="USD",
        status=PaymentStatus.PENDING,
        merchant_id=merchant_id,
        customer_id="c1",
        created_at=created_at,
    )
    fields.update(overrides)
    return Payment(**fields)


def test_save_and_find_round_trip(store):
    """Timestamps come back timezone-aware and amounts keep two decimals."""

    saved = store.save(_payment(amount=Decimal("12.50")))

    found = store.find_by_id(saved.id)
    assert found.amount == Decimal("12.50")
    assert found.status is PaymentStatus.PENDING
    assert found.created_at == T0
    assert found.created_at.tzinfo is not None
    assert found.updated_at is None


def test_find_by_id_missing_returns_none(store):
    assert store.find_by_id("missing") is None


def test_save_updates_existing_row(store):
    saved = store.save(_payment())
    saved.status = PaymentStatus.CANCELLED

    store.save(saved)

    assert store.find_by_id(saved.id).status is PaymentStatus.CANCELLED


def test_find_all_orders_by_creation_time(store):
    late = store.save(_payment(created_at=T0 + timedelta(minutes=5)))
    early = store.save(_payment(created_at=T0))

    page = store.find_all(PageRequest(page=0, size=10))

    assert [p.id for p in page.content] == [early.id, late.id]


def test_find_by_merchant_pages(store):
    for minute in range(5):
        store.save(_payment(created_at=T0 + timedelta(minutes=minute)))
    store.save(_payment(merchant_id="other"))

    page = store.find_by_merchant("m1", PageRequest(page=1, size=3))

    assert len(page.content) == 2
    assert page.total_elements == 5
    assert page.total_pages == 2
    assert page.page == 1


def test_page_past_the_end_is_empty(store):
    store.save(_payment())

    page = store.find_all(PageRequest(page=4, size=10))

    assert page.content == []
    assert page.total_elements == 1


def test_save_with_change_appends_timeline(store):
    saved = store.save(_payment(), StatusChange(None, PaymentStatus.PENDING, "payment_created", T0))
    store.save(saved, StatusChange(PaymentStatus.PENDING, PaymentStatus.CANCELLED, "payment_cancelled", T0))

    rows = store.timeline(saved.id)

    assert [row.reason for row in rows] == ["payment_created", "payment_cancelled"]
    assert rows[1].from_state is PaymentStatus.PENDING


@pytest.mark.parametrize("page, size", [(-1, 10), (0, 0)])
def test_page_request_rejects_bad_values(page, size):
    with pytest.raises(ValueError):
        PageRequest(page=page, size=size)


@pytest.mark.parametrize("total, size, pages", [(0, 20, 0), (5, 3, 2), (6, 3, 2), (7, 3, 3)])
def test_total_pages(total, size, pages):
    assert Page(content=[], page=0, size=size, total_elements=total).total_pages == pages
