# ============================================================
# Blocks API Router
# ------------------------------------------------------------
# Standard templates, generation of block instances and the
# availability view of a facility.
# ============================================================
import datetime as dt
from typing import List

from fastapi import APIRouter, Depends

from facility_services.booking.availability import AvailabilityStore
from facility_services.booking.dependencies import get_generator, get_registry, get_store
from facility_services.booking.generator import BlockGenerator, week_bounds
from facility_services.booking.models import BlockTemplate
from facility_services.booking.schemas import (
    BlockOut,
    GenerateRangeIn,
    GenerateWeekIn,
    GenerationOut,
    HoldIn,
    TemplateHoursIn,
    TemplateIn,
    TemplateOut,
)
from facility_services.booking.templates import TemplateRegistry

router = APIRouter(prefix="/bloques", tags=["bloques"])


def _template_out(t: BlockTemplate) -> TemplateOut:
    return TemplateOut(id=t.id, bloque=t.slot_index, hora_inicio=t.start_time, hora_fin=t.end_time)


# ------------------------------------------------------------
# Standard templates
# ------------------------------------------------------------
@router.get("/estandar", response_model=List[TemplateOut])
def list_templates(registry: TemplateRegistry = Depends(get_registry)):
    return [_template_out(t) for t in registry.list_templates()]


@router.post("/estandar", response_model=TemplateOut, status_code=201)
def create_template(body: TemplateIn, registry: TemplateRegistry = Depends(get_registry)):
    return _template_out(registry.create_template(body.bloque, body.hora_inicio, body.hora_fin))


@router.put("/estandar/{template_id}", response_model=TemplateOut)
def update_template(template_id: int, body: TemplateHoursIn, registry: TemplateRegistry = Depends(get_registry)):
    return _template_out(registry.update_template(template_id, body.hora_inicio, body.hora_fin))


@router.delete("/estandar/{template_id}", status_code=204)
def delete_template(template_id: int, registry: TemplateRegistry = Depends(get_registry)):
    registry.delete_template(template_id)


# ------------------------------------------------------------
# POST /bloques/generar-rango: instances over a date range
# POST /bloques/generar-semana: the Monday..Sunday of a date
# ------------------------------------------------------------
@router.post("/generar-rango", response_model=GenerationOut)
def generate_range(body: GenerateRangeIn, generator: BlockGenerator = Depends(get_generator)):
    created = generator.generate(body.instalacion_id, body.fecha_inicio, body.fecha_fin)
    return GenerationOut(
        instalacion_id=body.instalacion_id,
        fecha_inicio=body.fecha_inicio,
        fecha_fin=body.fecha_fin,
        creados=created,
    )


@router.post("/generar-semana", response_model=GenerationOut)
def generate_week(body: GenerateWeekIn, generator: BlockGenerator = Depends(get_generator)):
    created = generator.generate_week(body.instalacion_id, body.fecha)
    monday, sunday = week_bounds(body.fecha)
    return GenerationOut(instalacion_id=body.instalacion_id, fecha_inicio=monday, fecha_fin=sunday, creados=created)


# ------------------------------------------------------------
# Availability
# ------------------------------------------------------------
@router.get("/instalacion/{facility_id}/disponibilidad/{fecha}", response_model=List[BlockOut])
def availability(facility_id: int, fecha: dt.date, store: AvailabilityStore = Depends(get_store)):
    return [BlockOut.of(b) for b in store.availability_for_date(facility_id, fecha)]


@router.get("/instalacion/{facility_id}", response_model=List[BlockOut])
def facility_blocks(facility_id: int, store: AvailabilityStore = Depends(get_store)):
    return [BlockOut.of(b) for b in store.blocks_for_facility(facility_id)]


@router.get("/instalacion/{facility_id}/bloque/{template_id}/estado/{fecha}", response_model=BlockOut)
def block_status(facility_id: int, template_id: int, fecha: dt.date, store: AvailabilityStore = Depends(get_store)):
    return BlockOut.of(store.block_status(facility_id, template_id, fecha))


@router.get("/instancia/{instance_id}/estado")
def instance_status(instance_id: int, store: AvailabilityStore = Depends(get_store)):
    return {"id": instance_id, "disponible": store.status(instance_id)}


# ------------------------------------------------------------
# Administrative hold of a block (maintenance, events)
# ------------------------------------------------------------
@router.post("/instalacion/{facility_id}/bloquear")
def hold_block(facility_id: int, body: HoldIn, store: AvailabilityStore = Depends(get_store)):
    instance = store.hold(facility_id, body.bloque_tiempo_id, body.fecha)
    return {"id": instance.id, "disponible": False}


@router.delete("/instalacion/{facility_id}/bloquear/{template_id}")
def release_hold(facility_id: int, template_id: int, fecha: dt.date, store: AvailabilityStore = Depends(get_store)):
    instance = store.unhold(facility_id, template_id, fecha)
    return {"id": instance.id, "disponible": True}
