"""Simulated settlement behavior."""

import random
from decimal import Decimal

import pytest

from paycore.services.payments.models import Payment
from paycore.services.payments.settlement import SimulatedSettlement, always_settle


def _payment(customer_id="c1") -> Payment:
    return Payment(id="p1", amount=Decimal("5.00"), currency="USD", merchant_id="m1", customer_id=customer_id)


def test_always_settle_succeeds():
    assert always_settle(_payment()).success is True


def test_force_decline_customer_is_declined():
    """Customers prefixed force-decline always fail, regardless of rate."""

    result = SimulatedSettlement(failure_rate=0.0)(_payment("Force-Decline-42"))

    assert result.success is False
    assert result.error_code == "PROVIDER_DECLINE"


def test_failure_rate_one_always_declines():
    settle = SimulatedSettlement(failure_rate=1.0, rng=random.Random(7))

    assert not any(settle(_payment()).success for _ in range(20))


def test_failure_rate_zero_never_declines():
    settle = SimulatedSettlement(failure_rate=0.0)

    assert all(settle(_payment()).success for _ in range(20))


@pytest.mark.parametrize("rate", [-0.1, 1.5])
def test_failure_rate_out_of_range(rate):
    with pytest.raises(ValueError):
        SimulatedSettlement(failure_rate=rate)
