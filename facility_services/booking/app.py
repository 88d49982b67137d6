# ============================================================
# app.py: Entry point of the Booking service
# ------------------------------------------------------------
# Builds the FastAPI application:
#   - creates the tables and seeds the standard blocks
#   - starts the expiry sweeper in a daemon thread
#   - maps engine and storage errors to JSON responses
#   - mounts the blocks and booking routers
# Run with: uvicorn facility_services.booking.app:app
# ============================================================
import logging
import threading

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import SQLModel

from facility_services.booking import models  # noqa: F401  (registers the tables)
from facility_services.booking.api import router
from facility_services.booking.blocks_api import router as blocks_router
from facility_services.booking.config import LOG_LEVEL
from facility_services.booking.database import engine
from facility_services.booking.dependencies import coordinator, registry
from facility_services.booking.errors import BookingError, InternalError
from facility_services.booking.sweeper import run_sweeper

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Booking Service")


@app.on_event("startup")
def start():
    SQLModel.metadata.create_all(engine)
    registry.ensure_default_templates()
    threading.Thread(target=run_sweeper, args=(coordinator,), daemon=True).start()


@app.exception_handler(BookingError)
def booking_error(request: Request, exc: BookingError):
    if exc.status_code >= 500:
        logger.error("[api] %s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(SQLAlchemyError)
def storage_error(request: Request, exc: SQLAlchemyError):
    logger.error("[api] %s %s -> storage failure", request.method, request.url.path, exc_info=exc)
    err = InternalError("storage failure, try again later")
    return JSONResponse(status_code=err.status_code, content=err.to_dict())


@app.get("/health")
def health():
    return {"ok": True}


app.include_router(blocks_router)
app.include_router(router)
