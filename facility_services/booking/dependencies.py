# ============================================================
# dependencies.py: Wiring of the engine components
# ------------------------------------------------------------
# One instance of each component per process, handed to the
# routes through FastAPI dependencies so tests can override
# them with app.dependency_overrides.
# ============================================================
from facility_services.booking.availability import AvailabilityStore
from facility_services.booking.coordinator import ReservationCoordinator
from facility_services.booking.database import new_session
from facility_services.booking.gateway import WebpayGateway
from facility_services.booking.generator import BlockGenerator
from facility_services.booking.notifier import NotificationService
from facility_services.booking.templates import TemplateRegistry

store = AvailabilityStore(new_session)
generator = BlockGenerator(new_session)
registry = TemplateRegistry(new_session)
coordinator = ReservationCoordinator(new_session, store, WebpayGateway(), NotificationService())


def get_store() -> AvailabilityStore:
    return store


def get_generator() -> BlockGenerator:
    return generator


def get_registry() -> TemplateRegistry:
    return registry


def get_coordinator() -> ReservationCoordinator:
    return coordinator
