# ============================================================
# consumer.py: Listener on the "events" exchange
# ------------------------------------------------------------
# Binds an exclusive, server-named queue to the fanout
# exchange and mails every ReservationConfirmed event.
# Reconnects forever with a growing pause when RabbitMQ is
# not reachable yet (container start order).
# ============================================================
import json
import logging
import time
from typing import Callable, Optional

from kombu import Connection, Exchange, Queue

from facility_services.notification.config import RABBITMQ_URL
from facility_services.notification.mailer import send_confirmation

logger = logging.getLogger(__name__)

EVENTS = Exchange("events", type="fanout", durable=True)

RESERVATION_CONFIRMED = "ReservationConfirmed"


def handle_event(msg: dict, send: Optional[Callable[[str, dict], dict]] = None) -> bool:
    """Returns True when an e-mail was handed to the mailer."""
    t = msg.get("type")
    p = msg.get("payload") or {}
    if t != RESERVATION_CONFIRMED:
        return False
    email = p.get("email")
    if not email:
        logger.warning("[notification] %s without e-mail: %s", t, p)
        return False
    details = {k: v for k, v in p.items() if k != "email"}
    (send or send_confirmation)(email, details)
    return True


def on_message(body, message):
    try:
        msg = json.loads(body) if isinstance(body, (str, bytes)) else body
        handle_event(msg)
    except ValueError:
        logger.warning("[notification] bad payload dropped: %r", body)
    except Exception:
        # a failed e-mail must not stop the listener
        logger.exception("[notification] could not deliver %r", body)
    finally:
        message.ack()


def start_consumer(url: str = RABBITMQ_URL):
    attempt = 0
    while True:
        try:
            logger.info("[notification] connecting to rabbitmq...")
            with Connection(url, heartbeat=60) as conn:
                queue = Queue("", exchange=EVENTS, exclusive=True, auto_delete=True)
                with conn.Consumer(queue, callbacks=[on_message]):
                    logger.info("[notification] bound to 'events'. waiting...")
                    attempt = 0
                    while True:
                        conn.drain_events()
        except Exception as e:
            attempt += 1
            wait = min(5 * attempt, 30)
            logger.error("[notification] error: %s, retry in %ss", e, wait)
            time.sleep(wait)
