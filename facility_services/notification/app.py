# ============================================================
# app.py: Entry point of the Notification service
# ------------------------------------------------------------
# Mails the user when a reservation is confirmed. The work
# happens in a daemon thread listening on the "events"
# exchange (consumer.py); the HTTP side only answers /health
# for the orchestrator.
# Run with: uvicorn facility_services.notification.app:app
# ============================================================
import logging
import threading

from fastapi import FastAPI

from facility_services.notification.config import LOG_LEVEL
from facility_services.notification.consumer import start_consumer

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")

app = FastAPI(title="Notification Service")


@app.on_event("startup")
def startup():
    threading.Thread(target=start_consumer, daemon=True).start()


@app.get("/health")
def health():
    return {"ok": True}
