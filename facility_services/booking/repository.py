# ============================================================
# repository.py: Data access for the Booking service
# ------------------------------------------------------------
# Repository pattern: each class wraps a Session handed in by
# the caller and isolates SQL from the coordinator and API.
# Status changes are conditional UPDATEs so that concurrent
# cancel / payment callback / expiry settle on one winner.
# ============================================================
import datetime as dt
from dataclasses import dataclass
from typing import Iterable, List, Optional

from sqlalchemy import update
from sqlmodel import Session, func, select

from facility_services.booking.models import (
    ACTIVE_STATUSES,
    AppUser,
    BlockTemplate,
    Facility,
    FacilityBlockInstance,
    Payment,
    PaymentStatus,
    Reservation,
    ReservationStatus,
    utcnow,
)


@dataclass
class InstanceContext:
    """A block instance with the template and facility it belongs to."""

    instance: FacilityBlockInstance
    template: BlockTemplate
    facility: Facility


@dataclass
class ReservationView:
    reservation: Reservation
    instance: FacilityBlockInstance
    template: BlockTemplate
    facility: Facility


class CatalogRepository:
    """Read-only access to facilities, users and block instances."""

    def __init__(self, session: Session):
        self.session = session

    def get_facility(self, facility_id: int) -> Optional[Facility]:
        return self.session.get(Facility, facility_id)

    def get_user(self, user_id: int) -> Optional[AppUser]:
        return self.session.get(AppUser, user_id)

    def get_instance(self, instance_id: int) -> Optional[FacilityBlockInstance]:
        return self.session.get(FacilityBlockInstance, instance_id)

    def find_instance(self, facility_id: int, template_id: int, day: dt.date) -> Optional[FacilityBlockInstance]:
        return self.session.exec(
            select(FacilityBlockInstance).where(
                FacilityBlockInstance.facility_id == facility_id,
                FacilityBlockInstance.template_id == template_id,
                FacilityBlockInstance.date == day,
            )
        ).first()

    def instance_context(self, instance_id: int) -> Optional[InstanceContext]:
        row = self.session.exec(
            select(FacilityBlockInstance, BlockTemplate, Facility)
            .join(BlockTemplate, BlockTemplate.id == FacilityBlockInstance.template_id)
            .join(Facility, Facility.id == FacilityBlockInstance.facility_id)
            .where(FacilityBlockInstance.id == instance_id)
        ).first()
        if not row:
            return None
        return InstanceContext(*row)


class ReservationRepository:
    def __init__(self, session: Session):
        self.session = session

    def create(self, r: Reservation) -> Reservation:
        self.session.add(r)
        self.session.commit()
        self.session.refresh(r)
        return r

    def get(self, reservation_id: int) -> Optional[Reservation]:
        return self.session.get(Reservation, reservation_id, populate_existing=True)

    def _views(self, stmt) -> List[ReservationView]:
        return [ReservationView(*row) for row in self.session.exec(stmt).all()]

    def _view_query(self):
        return (
            select(Reservation, FacilityBlockInstance, BlockTemplate, Facility)
            .join(FacilityBlockInstance, FacilityBlockInstance.id == Reservation.instance_id)
            .join(BlockTemplate, BlockTemplate.id == FacilityBlockInstance.template_id)
            .join(Facility, Facility.id == FacilityBlockInstance.facility_id)
        )

    def view(self, reservation_id: int) -> Optional[ReservationView]:
        views = self._views(self._view_query().where(Reservation.id == reservation_id))
        return views[0] if views else None

    def list_views(self) -> List[ReservationView]:
        return self._views(
            self._view_query().order_by(FacilityBlockInstance.date, BlockTemplate.start_time, Reservation.id)
        )

    def transition(
        self,
        reservation_id: int,
        from_statuses: Iterable[ReservationStatus],
        to_status: ReservationStatus,
    ) -> bool:
        """Move a reservation to ``to_status`` only if it is currently in one of
        ``from_statuses``. Commits; returns False when another writer got there first."""
        result = self.session.execute(
            update(Reservation)
            .where(Reservation.id == reservation_id, Reservation.status.in_(list(from_statuses)))
            .values(status=to_status, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        return result.rowcount == 1

    def repoint(self, reservation_id: int, old_instance_id: int, new_instance_id: int) -> bool:
        result = self.session.execute(
            update(Reservation)
            .where(
                Reservation.id == reservation_id,
                Reservation.instance_id == old_instance_id,
                Reservation.status == ReservationStatus.CONFIRMED,
            )
            .values(instance_id=new_instance_id, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        return result.rowcount == 1

    def count_active_for_user_date(self, user_id: int, day: dt.date, exclude_id: Optional[int] = None) -> int:
        stmt = (
            select(func.count(Reservation.id))
            .join(FacilityBlockInstance, FacilityBlockInstance.id == Reservation.instance_id)
            .where(
                Reservation.user_id == user_id,
                FacilityBlockInstance.date == day,
                Reservation.status.in_(list(ACTIVE_STATUSES)),
            )
        )
        if exclude_id is not None:
            stmt = stmt.where(Reservation.id != exclude_id)
        return self.session.exec(stmt).one()

    def has_active_for_instance(self, instance_id: int) -> bool:
        return self.session.exec(
            select(Reservation.id).where(
                Reservation.instance_id == instance_id,
                Reservation.status.in_(list(ACTIVE_STATUSES)),
            )
        ).first() is not None

    def stale_pending(self, cutoff: dt.datetime) -> List[Reservation]:
        return list(
            self.session.exec(
                select(Reservation).where(
                    Reservation.status == ReservationStatus.PENDING_PAYMENT,
                    Reservation.created_at < cutoff,
                )
            ).all()
        )


class PaymentRepository:
    def __init__(self, session: Session):
        self.session = session

    def create(self, p: Payment) -> Payment:
        self.session.add(p)
        self.session.commit()
        self.session.refresh(p)
        return p

    def get_by_token(self, token: str) -> Optional[Payment]:
        return self.session.exec(
            select(Payment)
            .where(Payment.external_transaction_id == token)
            .execution_options(populate_existing=True)
        ).first()

    def pending_for_reservation(self, reservation_id: int) -> List[Payment]:
        return list(
            self.session.exec(
                select(Payment).where(
                    Payment.reservation_id == reservation_id,
                    Payment.status == PaymentStatus.PENDING,
                )
            ).all()
        )

    def finalize(self, payment_id: int, status: PaymentStatus) -> bool:
        """pending -> completed|fallido, once. False if it was already final."""
        result = self.session.execute(
            update(Payment)
            .where(Payment.id == payment_id, Payment.status == PaymentStatus.PENDING)
            .values(status=status, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        return result.rowcount == 1

    def record_late_authorization(self, payment_id: int) -> bool:
        """fallido -> completed: the provider charged after the reservation was closed."""
        result = self.session.execute(
            update(Payment)
            .where(Payment.id == payment_id, Payment.status == PaymentStatus.FAILED)
            .values(status=PaymentStatus.COMPLETED, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        return result.rowcount == 1

    def fail_pending_for_reservation(self, reservation_id: int) -> int:
        result = self.session.execute(
            update(Payment)
            .where(Payment.reservation_id == reservation_id, Payment.status == PaymentStatus.PENDING)
            .values(status=PaymentStatus.FAILED, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        return result.rowcount

