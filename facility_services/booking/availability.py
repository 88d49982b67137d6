# ============================================================
# availability.py: Ownership of the ``available`` flag
# ------------------------------------------------------------
# reserve() is a single conditional UPDATE:
#     UPDATE ... SET available = false
#     WHERE id = :id AND available = true
# The database serializes concurrent writers on the row, so
# exactly one caller sees rowcount == 1. No in-process lock.
# release() is unconditional and therefore idempotent.
# ============================================================
import datetime as dt
import logging
from dataclasses import dataclass
from typing import List

from sqlalchemy import update
from sqlmodel import select

from facility_services.booking.database import SessionFactory
from facility_services.booking.errors import Conflict, NotFound, Unavailable
from facility_services.booking.models import BlockTemplate, FacilityBlockInstance
from facility_services.booking.repository import CatalogRepository, ReservationRepository

logger = logging.getLogger(__name__)


@dataclass
class BlockAvailability:
    instance_id: int
    template_id: int
    slot_index: int
    date: dt.date
    start_time: dt.time
    end_time: dt.time
    available: bool


class AvailabilityStore:
    def __init__(self, sessions: SessionFactory):
        self._sessions = sessions

    def reserve(self, instance_id: int) -> None:
        """Flip available true -> false. Raises Unavailable if someone holds it."""
        with self._sessions() as s:
            result = s.execute(
                update(FacilityBlockInstance)
                .where(FacilityBlockInstance.id == instance_id, FacilityBlockInstance.available.is_(True))
                .values(available=False)
                .execution_options(synchronize_session=False)
            )
            s.commit()
            if result.rowcount == 1:
                logger.debug("[availability] reserved instance=%s", instance_id)
                return
            if s.get(FacilityBlockInstance, instance_id) is None:
                raise NotFound(f"block instance {instance_id} not found")
        raise Unavailable(f"block instance {instance_id} is no longer available")

    def release(self, instance_id: int) -> None:
        with self._sessions() as s:
            s.execute(
                update(FacilityBlockInstance)
                .where(FacilityBlockInstance.id == instance_id)
                .values(available=True)
                .execution_options(synchronize_session=False)
            )
            s.commit()
        logger.debug("[availability] released instance=%s", instance_id)

    def status(self, instance_id: int) -> bool:
        with self._sessions() as s:
            available = s.exec(
                select(FacilityBlockInstance.available).where(FacilityBlockInstance.id == instance_id)
            ).first()
        if available is None:
            raise NotFound(f"block instance {instance_id} not found")
        return available

    def _blocks(self, *criteria, order_by) -> List[BlockAvailability]:
        with self._sessions() as s:
            rows = s.exec(
                select(FacilityBlockInstance, BlockTemplate)
                .join(BlockTemplate, BlockTemplate.id == FacilityBlockInstance.template_id)
                .where(*criteria)
                .order_by(*order_by)
            ).all()
        return [
            BlockAvailability(
                instance_id=i.id,
                template_id=t.id,
                slot_index=t.slot_index,
                date=i.date,
                start_time=t.start_time,
                end_time=t.end_time,
                available=i.available,
            )
            for i, t in rows
        ]

    def availability_for_date(self, facility_id: int, day: dt.date) -> List[BlockAvailability]:
        return self._blocks(
            FacilityBlockInstance.facility_id == facility_id,
            FacilityBlockInstance.date == day,
            order_by=[BlockTemplate.start_time],
        )

    def blocks_for_facility(self, facility_id: int) -> List[BlockAvailability]:
        """Every generated block of a facility, by date then start time."""
        with self._sessions() as s:
            if CatalogRepository(s).get_facility(facility_id) is None:
                raise NotFound(f"facility {facility_id} not found")
        return self._blocks(
            FacilityBlockInstance.facility_id == facility_id,
            order_by=[FacilityBlockInstance.date, BlockTemplate.start_time],
        )

    def block_status(self, facility_id: int, template_id: int, day: dt.date) -> BlockAvailability:
        blocks = self._blocks(
            FacilityBlockInstance.facility_id == facility_id,
            FacilityBlockInstance.template_id == template_id,
            FacilityBlockInstance.date == day,
            order_by=[BlockTemplate.start_time],
        )
        if not blocks:
            raise NotFound(f"no block {template_id} for facility {facility_id} on {day}")
        return blocks[0]

    # ------------------------------------------------------------
    # Administrative holds (maintenance, events...)
    # ------------------------------------------------------------
    def _find(self, facility_id: int, template_id: int, day: dt.date) -> FacilityBlockInstance:
        with self._sessions() as s:
            instance = CatalogRepository(s).find_instance(facility_id, template_id, day)
        if instance is None:
            raise NotFound(f"no block {template_id} for facility {facility_id} on {day}")
        return instance

    def hold(self, facility_id: int, template_id: int, day: dt.date) -> FacilityBlockInstance:
        instance = self._find(facility_id, template_id, day)
        self.reserve(instance.id)
        logger.info("[availability] admin hold instance=%s", instance.id)
        return instance

    def unhold(self, facility_id: int, template_id: int, day: dt.date) -> FacilityBlockInstance:
        instance = self._find(facility_id, template_id, day)
        with self._sessions() as s:
            if ReservationRepository(s).has_active_for_instance(instance.id):
                raise Conflict(f"block instance {instance.id} belongs to an active reservation")
        self.release(instance.id)
        logger.info("[availability] admin hold lifted instance=%s", instance.id)
        return instance
