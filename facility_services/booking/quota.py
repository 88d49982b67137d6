# ============================================================
# quota.py: Per-user daily reservation limit
# ------------------------------------------------------------
# Counts PENDING_PAYMENT + CONFIRMED reservations of a user on
# a calendar date, across every facility.
#
# The count is advisory: two concurrent bookings by the same
# user may both read limit-1 and both pass. The block itself
# stays strictly exclusive (see availability.reserve).
# ============================================================
import datetime as dt
from typing import Optional

from sqlmodel import Session

from facility_services.booking.config import LIMITE_RESERVAS_POR_DIA
from facility_services.booking.errors import QuotaExceeded
from facility_services.booking.repository import ReservationRepository


def count_active(s: Session, user_id: int, day: dt.date, exclude_reservation_id: Optional[int] = None) -> int:
    return ReservationRepository(s).count_active_for_user_date(user_id, day, exclude_id=exclude_reservation_id)


def check_daily_quota(
    s: Session,
    user_id: int,
    day: dt.date,
    limit: int = LIMITE_RESERVAS_POR_DIA,
    exclude_reservation_id: Optional[int] = None,
) -> int:
    """Raise QuotaExceeded when the user already holds ``limit`` active reservations on ``day``."""
    total = count_active(s, user_id, day, exclude_reservation_id)
    if total >= limit:
        raise QuotaExceeded(
            f"user {user_id} already has {total} reservations on {day.isoformat()}",
            details={"limit": limit, "count": total},
        )
    return total
