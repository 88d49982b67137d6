# ============================================================
# Booking API Router
# ------------------------------------------------------------
# REST endpoints to create, read, modify and cancel
# reservations, plus the Webpay payment endpoints. Business
# rules live in ReservationCoordinator; errors it raises are
# turned into JSON responses by the handler in app.py.
# ============================================================
import datetime as dt
from typing import List

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from facility_services.booking.config import LIMITE_RESERVAS_POR_DIA
from facility_services.booking.coordinator import BookingOutcome, ReservationCoordinator
from facility_services.booking.dependencies import get_coordinator
from facility_services.booking.errors import PaymentError, ValidationError
from facility_services.booking.models import PaymentStatus
from facility_services.booking.schemas import (
    BookingOut,
    DailyCountOut,
    PaymentOutcomeOut,
    PaymentRedirectOut,
    PaymentStartIn,
    ReservationIn,
    ReservationOut,
    ReservationPatch,
)

router = APIRouter()


def _booking_out(outcome: BookingOutcome, c: ReservationCoordinator) -> BookingOut:
    view = c.get_reservation(outcome.reservation.id)
    pago = PaymentRedirectOut.of(outcome.payment) if outcome.payment else None
    return BookingOut(**ReservationOut.of(view).model_dump(), pago=pago)


# ------------------------------------------------------------
# POST /reservas: Create a reservation
# ------------------------------------------------------------
# - standard facility: 201 with estado CONFIRMED
# - premium facility : 201 with estado PENDING_PAYMENT and the
#   Webpay redirection in "pago"
# ------------------------------------------------------------
@router.post("/reservas", response_model=BookingOut, status_code=201, tags=["reservas"])
def create_reservation(body: ReservationIn, c: ReservationCoordinator = Depends(get_coordinator)):
    outcome = c.create_reservation(body.usuario_id, body.instancia_id)
    return _booking_out(outcome, c)


@router.get("/reservas", response_model=List[ReservationOut], tags=["reservas"])
def list_reservations(c: ReservationCoordinator = Depends(get_coordinator)):
    return [ReservationOut.of(v) for v in c.list_reservations()]


@router.get("/reservas/usuario/{user_id}/fecha/{fecha}", response_model=DailyCountOut, tags=["reservas"])
def count_user_reservations(user_id: int, fecha: dt.date, c: ReservationCoordinator = Depends(get_coordinator)):
    return DailyCountOut(
        usuario_id=user_id,
        fecha=fecha,
        total=c.count_for_user_date(user_id, fecha),
        limite=LIMITE_RESERVAS_POR_DIA,
    )


@router.get("/reservas/{reservation_id}", response_model=ReservationOut, tags=["reservas"])
def get_reservation(reservation_id: int, c: ReservationCoordinator = Depends(get_coordinator)):
    return ReservationOut.of(c.get_reservation(reservation_id))


# ------------------------------------------------------------
# PUT/PATCH /reservas/{id}: Move a reservation to another block
# ------------------------------------------------------------
# The new block is reserved before the old one is released; if
# it is taken the reservation is left untouched (409).
# ------------------------------------------------------------
@router.api_route("/reservas/{reservation_id}", methods=["PUT", "PATCH"], response_model=ReservationOut, tags=["reservas"])
def modify_reservation(
    reservation_id: int,
    patch: ReservationPatch,
    c: ReservationCoordinator = Depends(get_coordinator),
):
    c.modify_reservation(reservation_id, patch.instancia_id)
    return ReservationOut.of(c.get_reservation(reservation_id))


@router.delete("/reservas/{reservation_id}", tags=["reservas"])
def cancel_reservation(reservation_id: int, c: ReservationCoordinator = Depends(get_coordinator)):
    c.cancel_reservation(reservation_id)
    return {"message": "reservation cancelled", "reserva": ReservationOut.of(c.get_reservation(reservation_id))}


# ------------------------------------------------------------
# Payments (Webpay Plus)
# ------------------------------------------------------------
@router.post("/pagos/iniciar", response_model=PaymentRedirectOut, tags=["pagos"])
def start_payment(body: PaymentStartIn, c: ReservationCoordinator = Depends(get_coordinator)):
    return PaymentRedirectOut.of(c.start_payment(body.reserva_id))


async def _callback_params(request: Request) -> dict:
    # Webpay redirects the browser with a GET or a form POST;
    # JSON is accepted for server-to-server retries
    params = dict(request.query_params)
    if request.method == "POST":
        ctype = request.headers.get("content-type", "")
        if ctype.startswith("application/json"):
            try:
                body = await request.json()
            except ValueError:
                raise ValidationError("callback body is not valid JSON")
            if not isinstance(body, dict):
                raise ValidationError("callback body must be a JSON object")
            params.update(body)
        elif ctype.startswith(("application/x-www-form-urlencoded", "multipart/form-data")):
            params.update((await request.form()).items())
    return params


# ------------------------------------------------------------
# GET/POST /pagos/confirmar: Provider callback
# ------------------------------------------------------------
# - token_ws        : normal return, commit the transaction
# - TBK_TOKEN only  : the user aborted at the payment form
# Idempotent: a repeated callback answers with the stored outcome.
# ------------------------------------------------------------
@router.api_route("/pagos/confirmar", methods=["GET", "POST"], response_model=PaymentOutcomeOut, tags=["pagos"])
async def confirm_payment(request: Request, c: ReservationCoordinator = Depends(get_coordinator)):
    params = await _callback_params(request)
    if params.get("token_ws"):
        outcome = await run_in_threadpool(c.confirm_payment, params["token_ws"])
    elif params.get("TBK_TOKEN"):
        outcome = await run_in_threadpool(c.abort_payment, params["TBK_TOKEN"])
    else:
        raise ValidationError("token_ws is required")

    body = PaymentOutcomeOut.of(outcome)
    if outcome.payment_status == PaymentStatus.FAILED:
        raise PaymentError("payment was not authorized", details=body.model_dump(), status_code=400)
    return body


@router.get("/pagos/resultado", tags=["pagos"])
def payment_result(token_ws: str, c: ReservationCoordinator = Depends(get_coordinator)):
    result = c.payment_status(token_ws)
    return {"status": result.status, "buy_order": result.buy_order, "amount": result.amount}
