# ============================================================
# publisher.py: Event emission over RabbitMQ
# ------------------------------------------------------------
# Publishes {"type": ..., "payload": ...} messages on the
# "events" fanout exchange. Every bound consumer (today the
# Notification service) receives every message.
# ============================================================
import logging

from kombu import Connection, Exchange

from facility_services.booking.config import RABBITMQ_URL

logger = logging.getLogger(__name__)

# durable=True so the exchange survives RabbitMQ restarts
EVENTS = Exchange("events", type="fanout", durable=True)


def publish_event(event_type: str, payload: dict, url: str = RABBITMQ_URL):
    message = {"type": event_type, "payload": payload}
    with Connection(url, connect_timeout=5) as conn:
        producer = conn.Producer(serializer="json")
        producer.publish(
            message,
            exchange=EVENTS,
            routing_key="",
            declare=[EVENTS],
            retry=True,
            retry_policy={"max_retries": 3, "interval_start": 0, "interval_step": 1, "interval_max": 2},
        )
    logger.info("[event] %s %s", event_type, payload)
