"""Unit tests for payment state-machine guardrails."""

import pytest

from paycore.common.state_machine import (
    ALLOWED_TRANSITIONS,
    PaymentStatus,
    can_transition,
    is_modifiable,
    validate_transition,
)


def test_valid_transition():
    """Sanity check: a legal transition should pass."""

    validate_transition(PaymentStatus.PENDING, PaymentStatus.PROCESSING)


def test_invalid_transition():
    """Illegal transition must raise to protect lifecycle correctness."""

    with pytest.raises(ValueError):
        validate_transition(PaymentStatus.PENDING, PaymentStatus.COMPLETED)


def test_every_status_has_an_entry():
    """The table covers the whole enum so lookups never miss."""

    assert set(ALLOWED_TRANSITIONS) == set(PaymentStatus)


def test_refund_only_from_completed():
    sources = [status for status in PaymentStatus if can_transition(status, PaymentStatus.REFUNDED)]

    assert sources == [PaymentStatus.COMPLETED]


def test_cancelled_and_refunded_have_no_exit():
    assert ALLOWED_TRANSITIONS[PaymentStatus.CANCELLED] == set()
    assert ALLOWED_TRANSITIONS[PaymentStatus.REFUNDED] == set()


@pytest.mark.parametrize(
    "status, expected",
    [
        (PaymentStatus.PENDING, True),
        (PaymentStatus.PROCESSING, True),
        (PaymentStatus.FAILED, True),
        (PaymentStatus.CANCELLED, True),
        (PaymentStatus.COMPLETED, False),
        (PaymentStatus.REFUNDED, False),
    ],
)
def test_is_modifiable(status, expected):
    """Only COMPLETED and REFUNDED refuse field edits."""

    assert is_modifiable(status) is expected


def test_processing_can_fall_back_to_pending():
    """Only PROCESSING may re-enter PENDING."""

    sources = [status for status in PaymentStatus if can_transition(status, PaymentStatus.PENDING)]

    assert sources == [PaymentStatus.PROCESSING]
