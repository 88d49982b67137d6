# ============================================================
# generator.py: Block generation
# ------------------------------------------------------------
# One FacilityBlockInstance per (facility, template, date).
# Re-running over an overlapping range is a no-op for the rows
# that already exist: the unique constraint on the triple plus
# ON CONFLICT DO NOTHING make a retry after a partial failure
# safe.
# ============================================================
import datetime as dt
import logging
from typing import Iterator, List, Optional, Sequence

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlmodel import Session, select

from facility_services.booking.config import MAX_GENERATION_DAYS
from facility_services.booking.database import SessionFactory
from facility_services.booking.errors import NotFound, ValidationError
from facility_services.booking.models import BlockTemplate, Facility, FacilityBlockInstance

logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {"postgresql": pg_insert, "sqlite": sqlite_insert}
_KEY = ["facility_id", "template_id", "date"]


def week_bounds(day: dt.date):
    """Monday and Sunday of the week containing ``day``."""
    monday = day - dt.timedelta(days=day.weekday())
    return monday, monday + dt.timedelta(days=6)


def iter_dates(start: dt.date, end: dt.date) -> Iterator[dt.date]:
    current = start
    while current <= end:
        yield current
        current += dt.timedelta(days=1)


def _insert_missing(s: Session, rows: List[dict]) -> int:
    insert = _UPSERT_DIALECTS.get(s.get_bind().dialect.name)
    if insert is not None:
        stmt = insert(FacilityBlockInstance.__table__).values(rows).on_conflict_do_nothing(index_elements=_KEY)
        return max(s.execute(stmt).rowcount, 0)

    # other backends: look before inserting, the unique constraint still guards races
    created = 0
    for row in rows:
        exists = s.exec(
            select(FacilityBlockInstance.id).where(
                FacilityBlockInstance.facility_id == row["facility_id"],
                FacilityBlockInstance.template_id == row["template_id"],
                FacilityBlockInstance.date == row["date"],
            )
        ).first()
        if exists is None:
            s.add(FacilityBlockInstance(**row))
            created += 1
    s.flush()
    return created


class BlockGenerator:
    def __init__(self, sessions: SessionFactory):
        self._sessions = sessions

    def generate(
        self,
        facility_id: int,
        start: dt.date,
        end: dt.date,
        templates: Optional[Sequence[BlockTemplate]] = None,
    ) -> int:
        """Create the missing instances for ``[start, end]``; returns how many were created."""
        if start > end:
            raise ValidationError("fecha_inicio must not be after fecha_fin")
        if (end - start).days + 1 > MAX_GENERATION_DAYS:
            raise ValidationError(f"range longer than {MAX_GENERATION_DAYS} days")

        with self._sessions() as s:
            if s.get(Facility, facility_id) is None:
                raise NotFound(f"facility {facility_id} not found")
            if templates is None:
                templates = list(s.exec(select(BlockTemplate).order_by(BlockTemplate.slot_index)).all())
            if not templates:
                raise ValidationError("no block templates defined")

            created = 0
            for day in iter_dates(start, end):
                rows = [
                    {"facility_id": facility_id, "template_id": t.id, "date": day, "available": True}
                    for t in templates
                ]
                created += _insert_missing(s, rows)
            s.commit()

        logger.info("[generator] facility=%s %s..%s created=%d", facility_id, start, end, created)
        return created

    def generate_week(self, facility_id: int, day: dt.date) -> int:
        monday, sunday = week_bounds(day)
        return self.generate(facility_id, monday, sunday)
