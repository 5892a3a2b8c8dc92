"""Payment lifecycle service.

The only place status transitions are decided. Every operation loads the
record from the store, checks the current status, mutates it and saves it
back; typed failures from `paycore.common.errors` carry the context the HTTP
layer needs. A declined settlement is a business outcome: `process` returns
the FAILED record instead of raising.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable
from uuid import uuid4

from paycore.common.errors import (
    InvalidPaymentState,
    PaymentNotFound,
    PaymentNotModifiable,
    PaymentValidationError,
)
from paycore.common.logging import logger, payment_id_ctx
from paycore.common.metrics import PaymentMetrics
from paycore.common.state_machine import PaymentStatus, can_transition, is_modifiable, validate_transition
from paycore.common.tracing import tracer
from paycore.services.payments.locking import LockProvider, NoLocks
from paycore.services.payments.models import Payment, PaymentTimeline
from paycore.services.payments.schemas import PaymentCreateRequest, PaymentUpdateRequest
from paycore.services.payments.settlement import Settlement, SettlementResult, always_settle
from paycore.services.payments.store import Page, PageRequest, PaymentStore, StatusChange

# Fields a PUT may overwrite; ids and lifecycle timestamps are not editable.
UPDATABLE_FIELDS = ("amount", "currency", "description", "card_last_four", "payment_method", "reference_id")

MAX_DESCRIPTION_LENGTH = 500


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _check_fields(values: dict, required: tuple[str, ...] = ()) -> dict[str, str]:
    """Return field -> message for every record invariant `values` breaks."""

    errors: dict[str, str] = {}
    for name in required:
        value = values.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            errors[name] = f"{name} is required"

    amount = values.get("amount")
    if amount is not None:
        if not isinstance(amount, Decimal):
            amount = Decimal(str(amount))
        if not amount.is_finite() or amount <= 0:
            errors["amount"] = "Amount must be greater than 0"
        elif amount.as_tuple().exponent < -2:
            errors["amount"] = "Amount must have at most 2 decimal places"

    currency = values.get("currency")
    if currency is not None and (len(currency) != 3 or not (currency.isascii() and currency.isalpha())):
        errors["currency"] = "Currency must be a 3-letter ISO code"

    description = values.get("description")
    if description is not None and len(description) > MAX_DESCRIPTION_LENGTH:
        errors["description"] = f"Description must not exceed {MAX_DESCRIPTION_LENGTH} characters"

    card_last_four = values.get("card_last_four")
    if card_last_four is not None and (
        len(card_last_four) != 4 or not (card_last_four.isascii() and card_last_four.isdigit())
    ):
        errors["card_last_four"] = "Card last four must be exactly 4 digits"
    return errors


def _normalize(values: dict) -> dict:
    if values.get("amount") is not None:
        values["amount"] = Decimal(str(values["amount"])).quantize(Decimal("0.01"))
    if values.get("currency") is not None:
        values["currency"] = values["currency"].upper()
    return values


class PaymentService:
    """Owns payment status progression and the rules around it."""

    def __init__(
        self,
        store: PaymentStore,
        metrics: PaymentMetrics,
        clock: Callable[[], datetime] = utcnow,
        settlement: Settlement = always_settle,
        locks: LockProvider | None = None,
    ) -> None:
        self.store = store
        self.metrics = metrics
        self.clock = clock
        self.settlement = settlement
        self.locks = locks or NoLocks()

    def _load(self, payment_id: str) -> Payment:
        payment = self.store.find_by_id(payment_id)
        if payment is None:
            raise PaymentNotFound(payment_id)
        return payment

    def _transition(self, payment: Payment, new_status: PaymentStatus, reason: str) -> StatusChange:
        """Apply one validated status change in memory and describe it for the timeline."""

        validate_transition(payment.status, new_status)
        now = self.clock()
        change = StatusChange(from_state=payment.status, to_state=new_status, reason=reason, at=now)
        payment.status = new_status
        payment.updated_at = now
        return change

    def create_payment(self, req: PaymentCreateRequest) -> Payment:
        """Create a PENDING payment from a validated request."""

        values = req.model_dump()
        errors = _check_fields(values, required=("amount", "currency", "merchant_id", "customer_id"))
        if errors:
            raise PaymentValidationError(errors)
        values = _normalize(values)

        logger.info(
            "creating payment merchant_id=%s customer_id=%s amount=%s currency=%s",
            values["merchant_id"],
            values["customer_id"],
            values["amount"],
            values["currency"],
        )
        now = self.clock()
        payment = Payment(
            id=str(uuid4()),
            amount=values["amount"],
            currency=values["currency"],
            status=PaymentStatus.PENDING,
            description=values.get("description"),
            merchant_id=values["merchant_id"],
            customer_id=values["customer_id"],
            card_last_four=values.get("card_last_four"),
            payment_method=values.get("payment_method"),
            reference_id=values.get("reference_id"),
            created_at=now,
            updated_at=None,
            processed_at=None,
        )
        saved = self.store.save(
            payment,
            StatusChange(from_state=None, to_state=PaymentStatus.PENDING, reason="payment_created", at=now),
        )
        self.metrics.payment_created()
        payment_id_ctx.set(saved.id)
        logger.info("payment created payment_id=%s status=%s", saved.id, saved.status.value)
        return saved

    def get_payment(self, payment_id: str) -> Payment:
        logger.debug("retrieving payment payment_id=%s", payment_id)
        return self._load(payment_id)

    def list_payments(
        self,
        page: PageRequest,
        merchant_id: str | None = None,
        customer_id: str | None = None,
        status: PaymentStatus | None = None,
    ) -> Page:
        """Page through payments, optionally filtered by merchant, customer or status."""

        logger.debug(
            "listing payments page=%s size=%s merchant_id=%s customer_id=%s status=%s",
            page.page,
            page.size,
            merchant_id,
            customer_id,
            status,
        )
        if customer_id is None and status is None:
            if merchant_id is None:
                return self.store.find_all(page)
            return self.store.find_by_merchant(merchant_id, page)
        return self.store.find_by_filter(page, merchant_id=merchant_id, customer_id=customer_id, status=status)

    def update_payment(self, payment_id: str, req: PaymentUpdateRequest) -> Payment:
        """Overwrite the record's editable fields with every non-null request field."""

        payment_id_ctx.set(payment_id)
        logger.info("updating payment payment_id=%s", payment_id)
        with self.locks.for_payment(payment_id):
            payment = self._load(payment_id)
            if not is_modifiable(payment.status):
                raise PaymentNotModifiable(payment_id, payment.status)

            values = {name: getattr(req, name, None) for name in UPDATABLE_FIELDS}
            values = {name: value for name, value in values.items() if value is not None}
            errors = _check_fields(values)
            if errors:
                raise PaymentValidationError(errors, payment_id)
            for name, value in _normalize(values).items():
                setattr(payment, name, value)
            payment.updated_at = self.clock()
            saved = self.store.save(payment)

        logger.info("payment updated payment_id=%s status=%s", saved.id, saved.status.value)
        return saved

    def cancel_payment(self, payment_id: str) -> Payment:
        """Move the payment to CANCELLED unless it is completed, refunded or already cancelled."""

        payment_id_ctx.set(payment_id)
        logger.info("cancelling payment payment_id=%s", payment_id)
        with self.locks.for_payment(payment_id):
            payment = self._load(payment_id)
            if not is_modifiable(payment.status) or not can_transition(payment.status, PaymentStatus.CANCELLED):
                raise PaymentNotModifiable(payment_id, payment.status)
            change = self._transition(payment, PaymentStatus.CANCELLED, "payment_cancelled")
            saved = self.store.save(payment, change)

        logger.info("payment cancelled payment_id=%s", payment_id)
        return saved

    def _settle(self, payment: Payment) -> SettlementResult:
        try:
            return self.settlement(payment)
        except Exception as exc:
            logger.exception("settlement raised payment_id=%s error=%s", payment.id, exc)
            return SettlementResult(success=False, error_code="SETTLEMENT_ERROR")

    def _restore_pending(self, payment: Payment) -> None:
        """Put a payment whose final processing write failed back to PENDING."""

        payment.status = PaymentStatus.PROCESSING
        payment.processed_at = None
        change = self._transition(payment, PaymentStatus.PENDING, "processing_rolled_back")
        try:
            self.store.save(payment, change)
        except Exception:
            logger.exception("could not restore PENDING payment_id=%s", payment.id)

    def process_payment(self, payment_id: str) -> Payment:
        """Walk a PENDING payment through PROCESSING to COMPLETED or FAILED.

        The PROCESSING state is persisted before settlement runs. A failed
        settlement, including one that raises, leaves the payment FAILED and
        is returned like any other result. If the final write itself fails the
        payment is put back to PENDING and the error propagates.
        """

        payment_id_ctx.set(payment_id)
        logger.info("processing payment payment_id=%s", payment_id)
        with self.metrics.time_processing(), tracer.start_as_current_span("payments.process") as span:
            span.set_attribute("payment.id", payment_id)
            with self.locks.for_payment(payment_id):
                payment = self._load(payment_id)
                if payment.status is not PaymentStatus.PENDING:
                    raise InvalidPaymentState(payment_id, payment.status, PaymentStatus.PENDING)

                change = self._transition(payment, PaymentStatus.PROCESSING, "processing_started")
                payment = self.store.save(payment, change)

                result = self._settle(payment)
                if result.success:
                    change = self._transition(payment, PaymentStatus.COMPLETED, "settlement_succeeded")
                    payment.processed_at = change.at
                else:
                    change = self._transition(
                        payment,
                        PaymentStatus.FAILED,
                        f"settlement_failed:{result.error_code or 'UNKNOWN'}",
                    )
                try:
                    saved = self.store.save(payment, change)
                except Exception:
                    logger.exception("final processing write failed payment_id=%s", payment.id)
                    self._restore_pending(payment)
                    raise

                self.metrics.payment_processed(success=result.success)
                if result.success:
                    logger.info("payment processed payment_id=%s status=%s", saved.id, saved.status.value)
                else:
                    logger.error(
                        "payment processing failed payment_id=%s error_code=%s", saved.id, result.error_code
                    )
                span.set_attribute("payment.status", saved.status.value)
                return saved

    def refund_payment(self, payment_id: str) -> Payment:
        """Move a COMPLETED payment to REFUNDED."""

        payment_id_ctx.set(payment_id)
        logger.info("processing refund payment_id=%s", payment_id)
        with self.locks.for_payment(payment_id):
            payment = self._load(payment_id)
            if payment.status is not PaymentStatus.COMPLETED:
                raise InvalidPaymentState(payment_id, payment.status, PaymentStatus.COMPLETED)
            change = self._transition(payment, PaymentStatus.REFUNDED, "payment_refunded")
            saved = self.store.save(payment, change)

        logger.info("refund processed payment_id=%s status=%s", saved.id, saved.status.value)
        return saved

    def payment_timeline(self, payment_id: str) -> list[PaymentTimeline]:
        self._load(payment_id)
        return self.store.timeline(payment_id)
