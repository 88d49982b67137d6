"""Shared fixtures: a file-backed SQLite database seeded with two facilities,
three users and the five standard blocks, plus in-memory collaborators."""
import datetime as dt
import itertools
import os

# settings are read at import time; keep the module-level engine off Postgres
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("PENDING_PAYMENT_TTL_MINUTES", "15")

import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel, create_engine, select

from facility_services.booking.availability import AvailabilityStore
from facility_services.booking.coordinator import ReservationCoordinator
from facility_services.booking.database import session_factory
from facility_services.booking.errors import PaymentError
from facility_services.booking.gateway import AUTHORIZED, TransactionCreated, TransactionResult
from facility_services.booking.generator import BlockGenerator
from facility_services.booking.models import (
    AppUser,
    Facility,
    FacilityBlockInstance,
    FacilityTier,
)
from facility_services.booking.templates import TemplateRegistry

DAY = dt.date(2024, 11, 20)
NEXT_DAY = dt.date(2024, 11, 21)
PREMIUM_PRICE = 5000


class FakeGateway:
    """Webpay stand-in: every token commits to ``outcome`` unless set per token."""

    def __init__(self):
        self.outcome = AUTHORIZED
        self.outcomes = {}
        self.fail_create = False
        self.fail_commit = False
        self.on_commit = None          # runs while the commit is "in flight"
        self.created = []
        self.committed = []
        self._tokens = itertools.count(1)

    def create(self, buy_order, session_id, amount, return_url):
        if self.fail_create:
            raise PaymentError("payment provider unreachable")
        token = f"tok-{next(self._tokens)}"
        self.created.append({"token": token, "buy_order": buy_order, "amount": amount, "return_url": return_url})
        return TransactionCreated(token=token, url="https://webpay.test/init")

    def commit(self, token):
        if self.fail_commit:
            raise PaymentError("payment provider unreachable")
        self.committed.append(token)
        if self.on_commit:
            self.on_commit(token)
        return TransactionResult(status=self.outcomes.get(token, self.outcome), buy_order="R-test", amount=PREMIUM_PRICE)

    def status(self, token):
        return TransactionResult(status=self.outcomes.get(token, self.outcome), buy_order="R-test", amount=PREMIUM_PRICE)


class FakeNotifier:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def send(self, email, details):
        if self.fail:
            raise ConnectionError("smtp down")
        self.sent.append((email, details))


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'booking.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def sessions(engine):
    return session_factory(engine)


@pytest.fixture
def seed(sessions):
    """Facilities and users; returns their ids by role."""
    TemplateRegistry(sessions).ensure_default_templates()
    with sessions() as s:
        court = Facility(name="Cancha 1", tier=FacilityTier.STANDARD)
        pool = Facility(name="Piscina", tier=FacilityTier.PREMIUM, price=PREMIUM_PRICE)
        unpriced = Facility(name="Quincho", tier=FacilityTier.PREMIUM, price=0)
        users = [AppUser(email="ana@example.com"), AppUser(email="luis@example.com"), AppUser(email=None)]
        s.add_all([court, pool, unpriced, *users])
        s.commit()
        return {
            "standard": court.id,
            "premium": pool.id,
            "unpriced": unpriced.id,
            "user": users[0].id,
            "other_user": users[1].id,
            "no_email_user": users[2].id,
        }


@pytest.fixture
def store(sessions):
    return AvailabilityStore(sessions)


@pytest.fixture
def generator(sessions):
    return BlockGenerator(sessions)


@pytest.fixture
def registry(sessions):
    return TemplateRegistry(sessions)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def coordinator(sessions, store, gateway, notifier):
    return ReservationCoordinator(sessions, store, gateway, notifier, return_url="http://test/pagos/confirmar")


@pytest.fixture
def blocks(seed, generator, sessions):
    """Instances for DAY and NEXT_DAY on every facility, keyed (facility_key, day) -> [ids by slot]."""
    for key in ("standard", "premium", "unpriced"):
        generator.generate(seed[key], DAY, NEXT_DAY)

    def ids(key, day=DAY):
        with sessions() as s:
            rows = s.exec(
                select(FacilityBlockInstance)
                .where(FacilityBlockInstance.facility_id == seed[key], FacilityBlockInstance.date == day)
                .order_by(FacilityBlockInstance.template_id)
            ).all()
        return [r.id for r in rows]

    return ids


@pytest.fixture
def client(store, generator, registry, coordinator):
    from facility_services.booking import dependencies
    from facility_services.booking.app import app

    app.dependency_overrides[dependencies.get_store] = lambda: store
    app.dependency_overrides[dependencies.get_generator] = lambda: generator
    app.dependency_overrides[dependencies.get_registry] = lambda: registry
    app.dependency_overrides[dependencies.get_coordinator] = lambda: coordinator
    yield TestClient(app)
    app.dependency_overrides.clear()
