# ============================================================
# mailer.py: Confirmation e-mails
# ------------------------------------------------------------
# Renders templates/reservation_confirmed.html and sends it
# through Resend. Without RESEND_API_KEY the e-mail is only
# logged (local and docker-compose runs).
# ============================================================
import datetime as dt
import logging
from pathlib import Path

import resend
from jinja2 import Environment, FileSystemLoader, select_autoescape

from facility_services.notification.config import MAIL_FROM, RESEND_API_KEY

logger = logging.getLogger(__name__)

SUBJECT = "Confirmación de Reserva"

MESES = [
    "enero", "febrero", "marzo", "abril", "mayo", "junio",
    "julio", "agosto", "septiembre", "octubre", "noviembre", "diciembre",
]


def fecha_larga(value) -> str:
    """2024-11-20 -> '20 de noviembre de 2024'"""
    day = value if isinstance(value, dt.date) else dt.date.fromisoformat(value)
    return f"{day.day} de {MESES[day.month - 1]} de {day.year}"


env = Environment(
    loader=FileSystemLoader(Path(__file__).parent / "templates"),
    autoescape=select_autoescape(["html"]),
)
env.filters["fecha_larga"] = fecha_larga


def render_confirmation(details: dict) -> str:
    return env.get_template("reservation_confirmed.html").render(**details)


def send_confirmation(email: str, details: dict, api_key: str = RESEND_API_KEY) -> dict:
    html = render_confirmation(details)
    if not api_key:
        logger.info("[notification] mock email to %s: %s", email, details)
        return {"id": None}

    resend.api_key = api_key
    sent = resend.Emails.send({"from": MAIL_FROM, "to": [email], "subject": SUBJECT, "html": html})
    logger.info("[notification] email sent to %s for reservation %s", email, details.get("reservation_id"))
    return sent
