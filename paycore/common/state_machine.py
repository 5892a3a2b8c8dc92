"""Payment lifecycle states and the transitions the service may apply."""

import enum


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


ALLOWED_TRANSITIONS: dict[PaymentStatus, set[PaymentStatus]] = {
    PaymentStatus.PENDING: {PaymentStatus.PROCESSING, PaymentStatus.CANCELLED},
    # PENDING is only re-entered when the final processing write fails.
    PaymentStatus.PROCESSING: {
        PaymentStatus.COMPLETED,
        PaymentStatus.FAILED,
        PaymentStatus.CANCELLED,
        PaymentStatus.PENDING,
    },
    PaymentStatus.COMPLETED: {PaymentStatus.REFUNDED},
    PaymentStatus.FAILED: {PaymentStatus.CANCELLED},
    PaymentStatus.CANCELLED: set(),
    PaymentStatus.REFUNDED: set(),
}

# Statuses whose field edits and cancellation are refused.
LOCKED_STATUSES = frozenset({PaymentStatus.COMPLETED, PaymentStatus.REFUNDED})


def is_modifiable(status: PaymentStatus) -> bool:
    """True when update/cancel may touch a record in `status`."""

    return status not in LOCKED_STATUSES


def can_transition(current: PaymentStatus, new: PaymentStatus) -> bool:
    return new in ALLOWED_TRANSITIONS[current]


def validate_transition(current: PaymentStatus, new: PaymentStatus) -> None:
    """Raise when a transition is not allowed by the state machine."""

    if not can_transition(current, new):
        raise ValueError(f"Invalid transition: {current.value} -> {new.value}")
