"""Typed failures raised by the payment lifecycle service.

Each failure carries the context the HTTP layer needs to render a precise
response: an error code, the HTTP status it maps to, and the payment id and
statuses involved.
"""

from paycore.common.state_machine import PaymentStatus


class PaymentError(Exception):
    """Base class for every failure the service raises on purpose."""

    code = "INTERNAL_ERROR"
    http_status = 500

    def __init__(self, message: str, payment_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.payment_id = payment_id


class PaymentNotFound(PaymentError):
    code = "NOT_FOUND"
    http_status = 404

    def __init__(self, payment_id: str) -> None:
        super().__init__(f"Payment not found with ID: {payment_id}", payment_id)


class PaymentNotModifiable(PaymentError):
    """Update or cancel attempted on a record that no longer accepts them."""

    code = "CONFLICT"
    http_status = 409

    def __init__(self, payment_id: str, current_status: PaymentStatus) -> None:
        super().__init__(
            f"Payment {payment_id} cannot be modified in status: {current_status.value}", payment_id
        )
        self.current_status = current_status


class InvalidPaymentState(PaymentError):
    """Operation requires a status the record does not currently have."""

    code = "INVALID_STATE"
    http_status = 409

    def __init__(self, payment_id: str, current_status: PaymentStatus, required_status: PaymentStatus) -> None:
        super().__init__(
            f"Payment {payment_id} is in status {current_status.value} "
            f"but requires status {required_status.value}",
            payment_id,
        )
        self.current_status = current_status
        self.required_status = required_status


class PaymentValidationError(PaymentError):
    """Input broke a record invariant; `field_errors` maps field name to reason."""

    code = "VALIDATION_ERROR"
    http_status = 400

    def __init__(self, field_errors: dict[str, str], payment_id: str | None = None) -> None:
        super().__init__("Request validation failed", payment_id)
        self.field_errors = field_errors
