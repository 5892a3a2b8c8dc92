"""Settlement step run by `PaymentService.process`.

A settlement is any callable taking the payment and returning a
`SettlementResult`. Swapping in a real processor integration means passing a
different callable; the lifecycle rules around it stay the same.
"""

import random
from dataclasses import dataclass
from typing import Callable

from paycore.common.logging import logger
from paycore.services.payments.models import Payment


@dataclass(frozen=True)
class SettlementResult:
    success: bool
    error_code: str | None = None


Settlement = Callable[[Payment], SettlementResult]


def always_settle(payment: Payment) -> SettlementResult:
    """Stand-in for a processor call that always succeeds."""

    logger.debug("simulated settlement payment_id=%s amount=%s", payment.id, payment.amount)
    return SettlementResult(success=True)


class SimulatedSettlement:
    """Simulated processor with a configurable decline rate.

    Customers whose id starts with `force-decline` are always declined, which
    makes the failure path reachable from the HTTP API.
    """

    def __init__(self, failure_rate: float = 0.0, rng: random.Random | None = None) -> None:
        if not 0.0 <= failure_rate <= 1.0:
            raise ValueError("failure_rate must be between 0 and 1")
        self.failure_rate = failure_rate
        self.rng = rng or random.Random()

    def __call__(self, payment: Payment) -> SettlementResult:
        if payment.customer_id.lower().startswith("force-decline"):
            return SettlementResult(success=False, error_code="PROVIDER_DECLINE")
        if self.failure_rate and self.rng.random() < self.failure_rate:
            return SettlementResult(success=False, error_code="PROVIDER_DECLINE")
        return always_settle(payment)
