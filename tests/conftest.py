"""Shared fixtures: in-memory SQLite store, fresh metrics registry, fixed clock."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from prometheus_client import CollectorRegistry

from paycore.common.db import Base, build_engine, build_session_factory
from paycore.common.metrics import PaymentMetrics
from paycore.services.payments.main import create_app
from paycore.services.payments.schemas import PaymentCreateRequest
from paycore.services.payments.service import PaymentService
from paycore.services.payments.settlement import SimulatedSettlement
from paycore.services.payments.store import SqlAlchemyPaymentStore


class FixedClock:
    """Clock that only moves when a test tells it to."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int = 1) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


@pytest.fixture
def engine():
    engine = build_engine("sqlite+pysqlite://")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine):
    return SqlAlchemyPaymentStore(build_session_factory(engine))


@pytest.fixture
def metrics():
    return PaymentMetrics(CollectorRegistry())


@pytest.fixture
def clock():
    return FixedClock(datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def service(store, metrics, clock):
    return PaymentService(store, metrics, clock=clock)


@pytest.fixture
def client(store, metrics, clock):
    api_service = PaymentService(store, metrics, clock=clock, settlement=SimulatedSettlement())
    return TestClient(create_app(api_service))


@pytest.fixture
def make_request():
    def _make(**overrides) -> PaymentCreateRequest:
        fields = {
            "amount": Decimal("150.00"),
            "currency": "USD",
            "merchant_id": "m1",
            "customer_id": "c1",
        }
        fields.update(overrides)
        return PaymentCreateRequest(**fields)

    return _make
