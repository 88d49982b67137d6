# ============================================================
# schemas.py: Request / response bodies of the REST API
# ------------------------------------------------------------
# Field names follow the public API (Spanish), older camelCase
# names are accepted as aliases. Request bodies reject unknown
# keys: a PATCH can only change what is declared here.
# ============================================================
import datetime as dt
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from facility_services.booking.availability import BlockAvailability
from facility_services.booking.coordinator import PaymentOutcome, PaymentRedirect
from facility_services.booking.repository import ReservationView


class RequestBody(BaseModel):
    model_config = ConfigDict(extra="forbid")


class GenerateRangeIn(RequestBody):
    instalacion_id: int = Field(validation_alias=AliasChoices("instalacion_id", "instalacionId"))
    fecha_inicio: dt.date = Field(validation_alias=AliasChoices("fecha_inicio", "fechaInicio"))
    fecha_fin: dt.date = Field(validation_alias=AliasChoices("fecha_fin", "fechaFin"))


class GenerateWeekIn(RequestBody):
    instalacion_id: int = Field(validation_alias=AliasChoices("instalacion_id", "instalacionId"))
    fecha: dt.date


class TemplateIn(RequestBody):
    bloque: int = Field(gt=0)
    hora_inicio: dt.time = Field(validation_alias=AliasChoices("hora_inicio", "horaInicio"))
    hora_fin: dt.time = Field(validation_alias=AliasChoices("hora_fin", "horaFin"))


class TemplateHoursIn(RequestBody):
    hora_inicio: dt.time = Field(validation_alias=AliasChoices("hora_inicio", "horaInicio"))
    hora_fin: dt.time = Field(validation_alias=AliasChoices("hora_fin", "horaFin"))


class HoldIn(RequestBody):
    bloque_tiempo_id: int
    fecha: dt.date


class ReservationIn(RequestBody):
    usuario_id: int
    instancia_id: int = Field(validation_alias=AliasChoices("instancia_id", "instalacion_bloque_id"))


class ReservationPatch(RequestBody):
    """The only mutable field of a reservation is the block it points to."""

    instancia_id: int


class PaymentStartIn(RequestBody):
    reserva_id: int


class TemplateOut(BaseModel):
    id: int
    bloque: int
    hora_inicio: dt.time
    hora_fin: dt.time


class BlockOut(BaseModel):
    id: int
    bloque_tiempo_id: int
    bloque: int
    fecha: dt.date
    hora_inicio: dt.time
    hora_fin: dt.time
    disponible: bool

    @classmethod
    def of(cls, b: BlockAvailability) -> "BlockOut":
        return cls(
            id=b.instance_id,
            bloque_tiempo_id=b.template_id,
            bloque=b.slot_index,
            fecha=b.date,
            hora_inicio=b.start_time,
            hora_fin=b.end_time,
            disponible=b.available,
        )


class ReservationOut(BaseModel):
    id: int
    usuario_id: int
    instancia_id: int
    instalacion_id: int
    instalacion_nombre: str
    fecha: dt.date
    bloque: int
    hora_inicio: dt.time
    hora_fin: dt.time
    estado: str
    creado_en: dt.datetime

    @classmethod
    def of(cls, v: ReservationView) -> "ReservationOut":
        return cls(
            id=v.reservation.id,
            usuario_id=v.reservation.user_id,
            instancia_id=v.instance.id,
            instalacion_id=v.facility.id,
            instalacion_nombre=v.facility.name,
            fecha=v.instance.date,
            bloque=v.template.slot_index,
            hora_inicio=v.template.start_time,
            hora_fin=v.template.end_time,
            estado=v.reservation.status.value,
            creado_en=v.reservation.created_at,
        )


class PaymentRedirectOut(BaseModel):
    url: str
    token: str

    @classmethod
    def of(cls, r: PaymentRedirect) -> "PaymentRedirectOut":
        return cls(url=r.url, token=r.token)


class BookingOut(ReservationOut):
    pago: Optional[PaymentRedirectOut] = None


class PaymentOutcomeOut(BaseModel):
    token: str
    estado_pago: str
    reserva_id: int
    estado_reserva: str

    @classmethod
    def of(cls, o: PaymentOutcome) -> "PaymentOutcomeOut":
        return cls(
            token=o.token,
            estado_pago=o.payment_status.value,
            reserva_id=o.reservation_id,
            estado_reserva=o.reservation_status.value,
        )


class DailyCountOut(BaseModel):
    usuario_id: int
    fecha: dt.date
    total: int
    limite: int


class GenerationOut(BaseModel):
    instalacion_id: int
    fecha_inicio: dt.date
    fecha_fin: dt.date
    creados: int
