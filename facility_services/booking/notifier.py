# ============================================================
# notifier.py: Reservation confirmation notices
# ------------------------------------------------------------
# send() hands the confirmation to the Notification service
# through a ReservationConfirmed event; that service renders
# and delivers the e-mail.
# ============================================================
import datetime as dt
from typing import Callable, Protocol

from facility_services.booking.publisher import publish_event

RESERVATION_CONFIRMED = "ReservationConfirmed"


class Notifier(Protocol):
    def send(self, email: str, details: dict) -> None: ...


def reservation_details(reservation_id: int, facility: str, day: dt.date, start: dt.time, end: dt.time) -> dict:
    return {
        "reservation_id": reservation_id,
        "facility": facility,
        "date": day.isoformat(),
        "start_time": start.strftime("%H:%M"),
        "end_time": end.strftime("%H:%M"),
    }


class NotificationService:
    def __init__(self, publish: Callable[[str, dict], None] = publish_event):
        self._publish = publish

    def send(self, email: str, details: dict) -> None:
        self._publish(RESERVATION_CONFIRMED, {"email": email, **details})
