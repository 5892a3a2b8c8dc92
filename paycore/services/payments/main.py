"""HTTP surface for payment records and their lifecycle transitions."""

import argparse
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from time import perf_counter
from uuid import uuid4

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from pydantic.alias_generators import to_camel

from paycore.common.config import settings
from paycore.common.db import Base, SessionLocal, engine
from paycore.common.errors import PaymentError, PaymentValidationError
from paycore.common.logging import configure_logging, logger, trace_id_ctx
from paycore.common.metrics import (
    http_request_duration_seconds,
    http_requests_total,
    metrics_response,
    payment_metrics,
)
from paycore.common.startup import log_startup_config
from paycore.common.state_machine import PaymentStatus
from paycore.common.tracing import instrument_app, setup_tracing
from paycore.services.payments.locking import KeyedLocks, NoLocks
from paycore.services.payments.schemas import (
    ErrorResponse,
    PaymentCreateRequest,
    PaymentPage,
    PaymentResponse,
    PaymentUpdateRequest,
    TimelineEntry,
    ValidationErrorResponse,
)
from paycore.services.payments.service import PaymentService
from paycore.services.payments.settlement import SimulatedSettlement
from paycore.services.payments.store import PageRequest, SqlAlchemyPaymentStore

configure_logging()
if settings.tracing_enabled:
    setup_tracing(settings.service_name)
log_startup_config(
    settings.service_name,
    ["SERVICE_NAME", "DATABASE_URL", "LOG_LEVEL", "TRACING_ENABLED", "SETTLEMENT_FAILURE_RATE"],
)

router = APIRouter(prefix="/api/v1/payments", tags=["payments"])


def build_service() -> PaymentService:
    """Wire the service against the process-wide database and metrics."""

    return PaymentService(
        SqlAlchemyPaymentStore(SessionLocal),
        payment_metrics,
        settlement=SimulatedSettlement(settings.settlement_failure_rate),
        locks=KeyedLocks() if settings.serialize_payment_writes else NoLocks(),
    )


def get_service(request: Request) -> PaymentService:
    return request.app.state.service


def _error_body(status_code: int, error: str, message: str) -> dict:
    return ErrorResponse(
        status=status_code, error=error, message=message, timestamp=datetime.now(timezone.utc)
    ).model_dump(mode="json", by_alias=True)


def _validation_body(field_errors: dict[str, str]) -> dict:
    return ValidationErrorResponse(
        status=400,
        error="VALIDATION_ERROR",
        message="Request validation failed",
        timestamp=datetime.now(timezone.utc),
        field_errors=field_errors,
    ).model_dump(mode="json", by_alias=True)


async def handle_payment_error(request: Request, exc: PaymentError) -> JSONResponse:
    """Render typed service failures with their code and HTTP status."""

    if isinstance(exc, PaymentValidationError):
        logger.warning("validation error payment_id=%s errors=%s", exc.payment_id, exc.field_errors)
        field_errors = {to_camel(name): message for name, message in exc.field_errors.items()}
        return JSONResponse(status_code=400, content=_validation_body(field_errors))
    logger.warning(
        "payment request rejected code=%s payment_id=%s current_status=%s required_status=%s",
        exc.code,
        exc.payment_id,
        getattr(exc, "current_status", None),
        getattr(exc, "required_status", None),
    )
    return JSONResponse(status_code=exc.http_status, content=_error_body(exc.http_status, exc.code, exc.message))


async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    field_errors: dict[str, str] = {}
    for error in exc.errors():
        # loc is ("body", "merchantId") or ("query", "size"); keep the field part.
        loc = [str(part) for part in error["loc"][1:]] or [str(error["loc"][0])]
        field_errors[".".join(loc)] = error["msg"]
    logger.warning("validation error errors=%s", field_errors)
    return JSONResponse(status_code=400, content=_validation_body(field_errors))


async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unexpected error path=%s", request.url.path)
    return JSONResponse(status_code=500, content=_error_body(500, "INTERNAL_ERROR", "An unexpected error occurred"))


@router.post("", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
def create_payment(req: PaymentCreateRequest, service: PaymentService = Depends(get_service)):
    """Create a payment in `PENDING`."""

    return PaymentResponse.model_validate(service.create_payment(req))


@router.get("/{payment_id}", response_model=PaymentResponse)
def get_payment(payment_id: str, service: PaymentService = Depends(get_service)):
    return PaymentResponse.model_validate(service.get_payment(payment_id))


@router.get("", response_model=PaymentPage)
def list_payments(
    merchant_id: str | None = Query(default=None, alias="merchantId"),
    customer_id: str | None = Query(default=None, alias="customerId"),
    payment_status: PaymentStatus | None = Query(default=None, alias="status"),
    page: int = Query(default=0, ge=0),
    size: int | None = Query(default=None, ge=1),
    service: PaymentService = Depends(get_service),
):
    """Page through payments; `size` is capped at the configured maximum."""

    size = min(size or settings.default_page_size, settings.max_page_size)
    result = service.list_payments(
        PageRequest(page=page, size=size),
        merchant_id=merchant_id,
        customer_id=customer_id,
        status=payment_status,
    )
    return PaymentPage(
        content=[PaymentResponse.model_validate(payment) for payment in result.content],
        page=result.page,
        size=result.size,
        total_elements=result.total_elements,
        total_pages=result.total_pages,
    )


@router.put("/{payment_id}", response_model=PaymentResponse)
def update_payment(payment_id: str, req: PaymentUpdateRequest, service: PaymentService = Depends(get_service)):
    return PaymentResponse.model_validate(service.update_payment(payment_id, req))


@router.delete("/{payment_id}", status_code=status.HTTP_204_NO_CONTENT)
def cancel_payment(payment_id: str, service: PaymentService = Depends(get_service)):
    """Cancel a payment that has not been completed or refunded."""

    service.cancel_payment(payment_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{payment_id}/process", response_model=PaymentResponse)
def process_payment(payment_id: str, service: PaymentService = Depends(get_service)):
    """Settle a pending payment; the returned status is COMPLETED or FAILED."""

    return PaymentResponse.model_validate(service.process_payment(payment_id))


@router.post("/{payment_id}/refund", response_model=PaymentResponse)
def refund_payment(payment_id: str, service: PaymentService = Depends(get_service)):
    return PaymentResponse.model_validate(service.refund_payment(payment_id))


@router.get("/{payment_id}/timeline", response_model=list[TimelineEntry])
def payment_timeline(payment_id: str, service: PaymentService = Depends(get_service)):
    """Status changes of one payment, oldest first."""

    return [TimelineEntry.model_validate(row) for row in service.payment_timeline(payment_id)]


def create_app(service: PaymentService | None = None) -> FastAPI:
    """Build the FastAPI app; pass `service` to run against other collaborators."""

    owns_database = service is None

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        if owns_database and settings.auto_create_schema:
            Base.metadata.create_all(engine)
        yield

    app = FastAPI(title="Payments Service", lifespan=lifespan)
    app.state.service = service or build_service()
    app.include_router(router)
    app.add_exception_handler(PaymentError, handle_payment_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    app.add_exception_handler(Exception, handle_unexpected)

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        """Record request count and latency, and bind the trace id for logging."""

        trace_id_ctx.set(request.headers.get("x-trace-id") or str(uuid4()))
        start = perf_counter()
        route = request.url.path
        method = request.method
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            route_obj = request.scope.get("route")
            if route_obj is not None and getattr(route_obj, "path", None):
                route = route_obj.path
            response.headers["x-trace-id"] = trace_id_ctx.get()
            return response
        finally:
            elapsed = max(0.0, perf_counter() - start)
            http_request_duration_seconds.labels(
                service=settings.service_name,
                route=route,
                method=method,
            ).observe(elapsed)
            http_requests_total.labels(
                service=settings.service_name,
                route=route,
                method=method,
                status_code=str(status_code),
            ).inc()

    @app.get("/metrics")
    def metrics():
        """Prometheus scrape endpoint."""

        return metrics_response()

    @app.get("/health")
    def health():
        """Container health probe endpoint."""

        return {"ok": True}

    if settings.tracing_enabled:
        instrument_app(app)
    return app


app = create_app()


def run() -> None:
    """Start the API under uvicorn."""

    parser = argparse.ArgumentParser(description="Payments service")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true")
    args = parser.parse_args()
    uvicorn.run("paycore.services.payments.main:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    run()
