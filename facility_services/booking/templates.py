# ============================================================
# templates.py: Block template registry
# ------------------------------------------------------------
# The small, fixed set of daily time slots shared by every
# facility. Seeded once at start-up; admins may adjust hours.
# ============================================================
import datetime as dt
import logging
from typing import List

from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from facility_services.booking.database import SessionFactory
from facility_services.booking.errors import Conflict, NotFound, ValidationError
from facility_services.booking.models import BlockTemplate, FacilityBlockInstance

logger = logging.getLogger(__name__)

# 45-minute blocks with a 5-minute break, starting 08:00
DEFAULT_TEMPLATES = [
    (1, dt.time(8, 0), dt.time(8, 45)),
    (2, dt.time(8, 50), dt.time(9, 35)),
    (3, dt.time(9, 40), dt.time(10, 25)),
    (4, dt.time(10, 30), dt.time(11, 15)),
    (5, dt.time(11, 20), dt.time(12, 5)),
]


def _check_hours(start: dt.time, end: dt.time) -> None:
    if start >= end:
        raise ValidationError("start_time must be before end_time")


class TemplateRegistry:
    def __init__(self, sessions: SessionFactory):
        self._sessions = sessions

    def list_templates(self) -> List[BlockTemplate]:
        with self._sessions() as s:
            return list(s.exec(select(BlockTemplate).order_by(BlockTemplate.slot_index)).all())

    def ensure_default_templates(self) -> int:
        with self._sessions() as s:
            if s.exec(select(BlockTemplate)).first() is not None:
                return 0
            for slot_index, start, end in DEFAULT_TEMPLATES:
                s.add(BlockTemplate(slot_index=slot_index, start_time=start, end_time=end))
            s.commit()
        logger.info("[templates] seeded %d default blocks", len(DEFAULT_TEMPLATES))
        return len(DEFAULT_TEMPLATES)

    def create_template(self, slot_index: int, start: dt.time, end: dt.time) -> BlockTemplate:
        _check_hours(start, end)
        t = BlockTemplate(slot_index=slot_index, start_time=start, end_time=end)
        with self._sessions() as s:
            s.add(t)
            try:
                s.commit()
            except IntegrityError:
                s.rollback()
                raise Conflict(f"block {slot_index} already exists")
            s.refresh(t)
        return t

    def update_template(self, template_id: int, start: dt.time, end: dt.time) -> BlockTemplate:
        _check_hours(start, end)
        with self._sessions() as s:
            t = s.get(BlockTemplate, template_id)
            if not t:
                raise NotFound(f"block template {template_id} not found")
            t.start_time = start
            t.end_time = end
            s.add(t)
            s.commit()
            s.refresh(t)
        return t

    def delete_template(self, template_id: int) -> None:
        with self._sessions() as s:
            t = s.get(BlockTemplate, template_id)
            if not t:
                raise NotFound(f"block template {template_id} not found")
            in_use = s.exec(
                select(FacilityBlockInstance.id).where(FacilityBlockInstance.template_id == template_id)
            ).first()
            if in_use is not None:
                raise Conflict(f"block template {template_id} already has generated instances")
            s.delete(t)
            s.commit()
