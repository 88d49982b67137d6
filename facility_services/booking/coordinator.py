# ============================================================
# coordinator.py: Reservation orchestration
# ------------------------------------------------------------
# create -> quota check -> AvailabilityStore.reserve (atomic)
#        -> standard: CONFIRMED + notification
#        -> premium : PENDING_PAYMENT + Webpay transaction
# The payment callback re-enters through confirm_payment().
#
# Every error raised between reserve() and the reservation
# write releases the block before propagating, so a failure
# never strands an instance as unavailable.
# ============================================================
import datetime as dt
import logging
import time
from dataclasses import dataclass
from typing import List, Optional

from facility_services.booking.availability import AvailabilityStore
from facility_services.booking.config import BASE_URL, LIMITE_RESERVAS_POR_DIA, PENDING_PAYMENT_TTL_MINUTES
from facility_services.booking.database import SessionFactory
from facility_services.booking.errors import Conflict, NotFound, PaymentError, ValidationError
from facility_services.booking.gateway import PaymentGateway, TransactionResult
from facility_services.booking.models import (
    ACTIVE_STATUSES,
    Facility,
    FacilityTier,
    Payment,
    PaymentStatus,
    Reservation,
    ReservationStatus,
    utcnow,
)
from facility_services.booking.notifier import Notifier, reservation_details
from facility_services.booking.quota import check_daily_quota, count_active
from facility_services.booking.repository import (
    CatalogRepository,
    PaymentRepository,
    ReservationRepository,
    ReservationView,
)

logger = logging.getLogger(__name__)


@dataclass
class PaymentRedirect:
    url: str
    token: str


@dataclass
class BookingOutcome:
    reservation: Reservation
    payment: Optional[PaymentRedirect] = None


@dataclass
class PaymentOutcome:
    token: str
    payment_status: PaymentStatus
    reservation_id: int
    reservation_status: ReservationStatus


class ReservationCoordinator:
    def __init__(
        self,
        sessions: SessionFactory,
        store: AvailabilityStore,
        gateway: PaymentGateway,
        notifier: Notifier,
        daily_limit: int = LIMITE_RESERVAS_POR_DIA,
        return_url: str = f"{BASE_URL}/pagos/confirmar",
        pending_ttl_minutes: int = PENDING_PAYMENT_TTL_MINUTES,
    ):
        self._sessions = sessions
        self._store = store
        self._gateway = gateway
        self._notifier = notifier
        self._daily_limit = daily_limit
        self._return_url = return_url
        self._pending_ttl = dt.timedelta(minutes=pending_ttl_minutes) if pending_ttl_minutes > 0 else None

    # ------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------
    def get_reservation(self, reservation_id: int) -> ReservationView:
        with self._sessions() as s:
            view = ReservationRepository(s).view(reservation_id)
        if view is None:
            raise NotFound(f"reservation {reservation_id} not found")
        return view

    def list_reservations(self) -> List[ReservationView]:
        with self._sessions() as s:
            return ReservationRepository(s).list_views()

    def count_for_user_date(self, user_id: int, day: dt.date) -> int:
        with self._sessions() as s:
            return count_active(s, user_id, day)

    # ------------------------------------------------------------
    # createReservation
    # ------------------------------------------------------------
    def create_reservation(self, user_id: int, instance_id: int) -> BookingOutcome:
        # 1) instance -> facility, tier and price
        # 2) daily quota, nothing written yet
        with self._sessions() as s:
            ctx = CatalogRepository(s).instance_context(instance_id)
            if ctx is None:
                raise NotFound(f"block instance {instance_id} not found")
            premium = ctx.facility.tier == FacilityTier.PREMIUM
            if premium and ctx.facility.price <= 0:
                raise ValidationError(f"premium facility {ctx.facility.id} has no price")
            check_daily_quota(s, user_id, ctx.instance.date, self._daily_limit)

        # 3) the only exclusive step
        self._store.reserve(instance_id)

        status = ReservationStatus.PENDING_PAYMENT if premium else ReservationStatus.CONFIRMED
        try:
            with self._sessions() as s:
                reservation = ReservationRepository(s).create(
                    Reservation(user_id=user_id, instance_id=instance_id, status=status)
                )
        except Exception:
            logger.error("[coordinator] could not record reservation, releasing instance=%s", instance_id)
            self._store.release(instance_id)
            raise

        logger.info(
            "[coordinator] reservation=%s user=%s instance=%s status=%s",
            reservation.id, user_id, instance_id, status.value,
        )

        # 4) free facility: confirmed right away, the notice is best effort
        if not premium:
            self._notify(reservation.id)
            return BookingOutcome(reservation=reservation)

        # 5) premium facility: open the Webpay transaction
        try:
            redirect = self._open_payment(reservation, ctx.facility)
        except Exception:
            self._fail_pending(reservation.id, reservation.instance_id)
            raise
        return BookingOutcome(reservation=reservation, payment=redirect)

    def start_payment(self, reservation_id: int) -> PaymentRedirect:
        """New Webpay transaction for a reservation still waiting for payment."""
        view = self.get_reservation(reservation_id)
        if view.reservation.status != ReservationStatus.PENDING_PAYMENT:
            raise ValidationError(
                f"reservation {reservation_id} is {view.reservation.status.value}, not awaiting payment"
            )
        return self._open_payment(view.reservation, view.facility)

    def _open_payment(self, reservation: Reservation, facility: Facility) -> PaymentRedirect:
        # Webpay caps buy_order at 26 characters
        buy_order = f"R{reservation.id}-{int(time.time())}"
        session_id = f"session-{reservation.user_id}"
        created = self._gateway.create(buy_order, session_id, facility.price, self._return_url)
        with self._sessions() as s:
            PaymentRepository(s).create(
                Payment(
                    reservation_id=reservation.id,
                    amount=facility.price,
                    buy_order=buy_order,
                    external_transaction_id=created.token,
                )
            )
        return PaymentRedirect(url=created.url, token=created.token)

    # ------------------------------------------------------------
    # Payment callback
    # ------------------------------------------------------------
    def confirm_payment(self, token: str) -> PaymentOutcome:
        payment = self._payment(token)
        if payment.status != PaymentStatus.PENDING:
            # provider retry or duplicate callback
            return self._outcome(payment)

        try:
            result: TransactionResult = self._gateway.commit(token)
        except PaymentError:
            # a concurrent callback may have settled it while we were waiting
            payment = self._payment(token)
            if payment.status != PaymentStatus.PENDING:
                return self._outcome(payment)
            raise

        if result.authorized:
            return self._settle_authorized(payment)
        logger.info("[coordinator] payment %s not authorized (%s)", payment.id, result.status)
        return self._settle_rejected(payment)

    def abort_payment(self, token: str) -> PaymentOutcome:
        """The user cancelled at the provider: no commit, same outcome as a rejection."""
        payment = self._payment(token)
        if payment.status != PaymentStatus.PENDING:
            return self._outcome(payment)
        return self._settle_rejected(payment)

    def payment_status(self, token: str) -> TransactionResult:
        return self._gateway.status(token)

    def _payment(self, token: str) -> Payment:
        with self._sessions() as s:
            payment = PaymentRepository(s).get_by_token(token)
        if payment is None:
            raise NotFound("payment not found for token")
        return payment

    def _outcome(self, payment: Payment) -> PaymentOutcome:
        with self._sessions() as s:
            payment = PaymentRepository(s).get_by_token(payment.external_transaction_id)
            reservation = ReservationRepository(s).get(payment.reservation_id)
        return PaymentOutcome(
            token=payment.external_transaction_id,
            payment_status=payment.status,
            reservation_id=reservation.id,
            reservation_status=reservation.status,
        )

    def _settle_authorized(self, payment: Payment) -> PaymentOutcome:
        with self._sessions() as s:
            payments = PaymentRepository(s)
            if not payments.finalize(payment.id, PaymentStatus.COMPLETED):
                # a cancel or expiry failed the payment while the commit was in flight;
                # the money was taken anyway, keep that on record
                if payments.record_late_authorization(payment.id):
                    logger.warning(
                        "[coordinator] payment %s authorized after reservation %s was closed, refund required",
                        payment.id, payment.reservation_id,
                    )
                return self._outcome(payment)
            confirmed = ReservationRepository(s).transition(
                payment.reservation_id, [ReservationStatus.PENDING_PAYMENT], ReservationStatus.CONFIRMED
            )
        if confirmed:
            logger.info("[coordinator] reservation=%s confirmed by payment %s", payment.reservation_id, payment.id)
            self._notify(payment.reservation_id)
        else:
            # cancelled or expired first: its block is already released
            logger.warning(
                "[coordinator] payment %s authorized but reservation %s is no longer pending, refund required",
                payment.id, payment.reservation_id,
            )
        return self._outcome(payment)

    def _settle_rejected(self, payment: Payment) -> PaymentOutcome:
        with self._sessions() as s:
            if not PaymentRepository(s).finalize(payment.id, PaymentStatus.FAILED):
                return self._outcome(payment)
            reservation = ReservationRepository(s).get(payment.reservation_id)
        self._fail_pending(reservation.id, reservation.instance_id)
        return self._outcome(payment)

    def _fail_pending(self, reservation_id: int, instance_id: int) -> bool:
        """PENDING_PAYMENT -> FAILED, then release. The status is committed before the release."""
        with self._sessions() as s:
            failed = ReservationRepository(s).transition(
                reservation_id, [ReservationStatus.PENDING_PAYMENT], ReservationStatus.FAILED
            )
            if failed:
                PaymentRepository(s).fail_pending_for_reservation(reservation_id)
        if failed:
            self._store.release(instance_id)
            logger.info("[coordinator] reservation=%s failed, instance=%s released", reservation_id, instance_id)
        return failed

    # ------------------------------------------------------------
    # cancelReservation / modifyReservation
    # ------------------------------------------------------------
    def cancel_reservation(self, reservation_id: int) -> Reservation:
        with self._sessions() as s:
            repo = ReservationRepository(s)
            if not repo.transition(reservation_id, ACTIVE_STATUSES, ReservationStatus.CANCELLED):
                raise NotFound(f"reservation {reservation_id} not found or not active")
            PaymentRepository(s).fail_pending_for_reservation(reservation_id)
            # read after the transition: the instance can no longer move
            reservation = repo.get(reservation_id)
        self._store.release(reservation.instance_id)
        logger.info("[coordinator] reservation=%s cancelled, instance=%s released", reservation_id, reservation.instance_id)
        return reservation

    def modify_reservation(self, reservation_id: int, new_instance_id: int) -> Reservation:
        with self._sessions() as s:
            view = ReservationRepository(s).view(reservation_id)
            if view is None or view.reservation.status not in ACTIVE_STATUSES:
                raise NotFound(f"reservation {reservation_id} not found or not active")
            if view.reservation.status != ReservationStatus.CONFIRMED:
                raise ValidationError(f"reservation {reservation_id} is awaiting payment and cannot be modified")
            old_instance_id = view.instance.id
            if new_instance_id == old_instance_id:
                return view.reservation

            ctx = CatalogRepository(s).instance_context(new_instance_id)
            if ctx is None:
                raise NotFound(f"block instance {new_instance_id} not found")
            if (ctx.facility.tier, ctx.facility.price) != (view.facility.tier, view.facility.price):
                raise ValidationError("a reservation can only move to a block with the same tier and price")
            if ctx.instance.date != view.instance.date:
                check_daily_quota(s, view.reservation.user_id, ctx.instance.date, self._daily_limit)

        # new block first: if it is taken the original stays as it was
        self._store.reserve(new_instance_id)
        try:
            with self._sessions() as s:
                moved = ReservationRepository(s).repoint(reservation_id, old_instance_id, new_instance_id)
        except Exception:
            self._store.release(new_instance_id)
            raise
        if not moved:
            self._store.release(new_instance_id)
            raise Conflict(f"reservation {reservation_id} changed while being modified")

        self._store.release(old_instance_id)
        logger.info(
            "[coordinator] reservation=%s moved instance %s -> %s", reservation_id, old_instance_id, new_instance_id
        )
        self._notify(reservation_id)
        return self.get_reservation(reservation_id).reservation

    # ------------------------------------------------------------
    # Abandoned checkouts
    # ------------------------------------------------------------
    def expire_pending(self, now: Optional[dt.datetime] = None) -> int:
        if self._pending_ttl is None:
            return 0
        cutoff = (now or utcnow()) - self._pending_ttl
        with self._sessions() as s:
            stale = ReservationRepository(s).stale_pending(cutoff)
        expired = sum(1 for r in stale if self._fail_pending(r.id, r.instance_id))
        if expired:
            logger.info("[coordinator] expired %d pending payments older than %s", expired, cutoff.isoformat())
        return expired

    # ------------------------------------------------------------
    # Notification (never fails the booking)
    # ------------------------------------------------------------
    def _notify(self, reservation_id: int) -> None:
        try:
            with self._sessions() as s:
                view = ReservationRepository(s).view(reservation_id)
                user = CatalogRepository(s).get_user(view.reservation.user_id)
            if user is None or not user.email:
                logger.warning("[coordinator] no e-mail for user %s, notice skipped", view.reservation.user_id)
                return
            self._notifier.send(
                user.email,
                reservation_details(
                    view.reservation.id,
                    view.facility.name,
                    view.instance.date,
                    view.template.start_time,
                    view.template.end_time,
                ),
            )
        except Exception:
            logger.exception("[coordinator] notification for reservation %s failed", reservation_id)
