# ============================================================
# sweeper.py: Background expiry of abandoned checkouts
# ------------------------------------------------------------
# Runs in a daemon thread started with the service. Each pass
# fails the reservations stuck in PENDING_PAYMENT past their
# TTL and releases their blocks.
# ============================================================
import logging
import threading
from typing import Optional

from facility_services.booking.config import EXPIRY_SWEEP_SECONDS
from facility_services.booking.coordinator import ReservationCoordinator

logger = logging.getLogger(__name__)


def run_sweeper(
    coordinator: ReservationCoordinator,
    interval: float = EXPIRY_SWEEP_SECONDS,
    stop: Optional[threading.Event] = None,
):
    stop = stop or threading.Event()
    logger.info("[sweeper] started, every %ss", interval)
    while not stop.is_set():
        try:
            coordinator.expire_pending()
        except Exception as e:
            # keep the thread alive, the next pass retries
            logger.error("[sweeper] pass failed: %s", e)
        stop.wait(interval)
