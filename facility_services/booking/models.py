# ============================================================
# models.py: SQLModel tables of the Booking service
# ------------------------------------------------------------
#   1. BlockTemplate : fixed daily slots shared by all facilities
#   2. FacilityBlockInstance : one slot, one facility, one date
#   3. Reservation : a user's hold on one block instance
#   4. Payment : Webpay transaction of a premium reservation
#   5. Facility / AppUser : owned by other services, read-only here
# ============================================================
import datetime as dt
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, UniqueConstraint
from sqlmodel import Field, SQLModel


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class FacilityTier(str, Enum):
    STANDARD = "standard"
    PREMIUM = "premium"


# ------------------------------------------------------------
# Reservation lifecycle
# ------------------------------------------------------------
#  (none) -> CONFIRMED                 free facility
#  (none) -> PENDING_PAYMENT           premium facility
#  PENDING_PAYMENT -> CONFIRMED        payment authorized
#  PENDING_PAYMENT -> FAILED           rejected, aborted or expired
#  PENDING_PAYMENT|CONFIRMED -> CANCELLED
# ------------------------------------------------------------
class ReservationStatus(str, Enum):
    PENDING_PAYMENT = "PENDING_PAYMENT"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"


ACTIVE_STATUSES = (ReservationStatus.PENDING_PAYMENT, ReservationStatus.CONFIRMED)


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "fallido"


class Facility(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    tier: FacilityTier = FacilityTier.STANDARD
    price: int = 0                                   # CLP, only charged on premium


class AppUser(SQLModel, table=True):
    __tablename__ = "app_user"

    id: Optional[int] = Field(default=None, primary_key=True)
    email: Optional[str] = None


class BlockTemplate(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    slot_index: int = Field(index=True, unique=True)
    start_time: dt.time
    end_time: dt.time


class FacilityBlockInstance(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("facility_id", "template_id", "date", name="uq_instance_facility_template_date"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    facility_id: int = Field(foreign_key="facility.id", index=True)
    template_id: int = Field(foreign_key="blocktemplate.id")
    date: dt.date = Field(index=True)
    available: bool = True


class Reservation(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(index=True)
    instance_id: int = Field(foreign_key="facilityblockinstance.id", index=True)
    status: ReservationStatus = Field(default=ReservationStatus.PENDING_PAYMENT, index=True)
    created_at: dt.datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    updated_at: dt.datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class Payment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    reservation_id: int = Field(foreign_key="reservation.id", index=True)
    amount: int
    status: PaymentStatus = PaymentStatus.PENDING
    buy_order: str
    external_transaction_id: str = Field(index=True, unique=True)   # Webpay token
    created_at: dt.datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    updated_at: dt.datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
