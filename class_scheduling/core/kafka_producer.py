# class_scheduling/core/kafka_producer.py

import json
import logging
import threading
import time
from typing import Optional

from kafka import KafkaProducer
from kafka.errors import KafkaError

from class_scheduling.core.config import settings

logger = logging.getLogger(__name__)

_producer: Optional[KafkaProducer] = None
_producer_lock = threading.Lock()
# Monotonic deadline before which a failed connection is not retried
_unavailable_until: float = 0.0


def _api_version() -> Optional[tuple]:
    if not settings.KAFKA_API_VERSION:
        return None
    return tuple(int(part) for part in settings.KAFKA_API_VERSION.split("."))


def get_kafka_singleton() -> Optional[KafkaProducer]:
    """
    Return the process-wide Kafka producer, creating it on first use.

    Returns None when the brokers cannot be reached; callers treat that as
    "skip publishing" rather than an error. After a failure no new
    connection is attempted for KAFKA_RETRY_BACKOFF_SECONDS.
    """
    global _producer, _unavailable_until
    if _producer is not None:
        return _producer
    if time.monotonic() < _unavailable_until:
        return None

    with _producer_lock:
        if _producer is None and time.monotonic() >= _unavailable_until:
            try:
                _producer = KafkaProducer(
                    bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS,
                    value_serializer=lambda v: json.dumps(v, default=str).encode("utf-8"),
                    key_serializer=lambda k: k.encode("utf-8") if k else None,
                    # A pinned version skips the blocking version check in the constructor
                    api_version=_api_version(),
                    api_version_auto_timeout_ms=settings.PROGRESS_PUBLISH_TIMEOUT_MS,
                    request_timeout_ms=5000,
                    # Caps how long send() may block on metadata or a full buffer
                    max_block_ms=settings.PROGRESS_PUBLISH_TIMEOUT_MS,
                )
                logger.info("Kafka producer connected")
            except KafkaError as e:
                mark_kafka_unavailable()
                logger.warning(
                    f"Kafka producer unavailable, retrying in "
                    f"{settings.KAFKA_RETRY_BACKOFF_SECONDS}s: {e}"
                )
                return None
    return _producer


def mark_kafka_unavailable() -> None:
    """Drop the producer and back off before connecting again."""
    global _producer, _unavailable_until
    _producer = None
    _unavailable_until = time.monotonic() + settings.KAFKA_RETRY_BACKOFF_SECONDS


def close_kafka_producer() -> None:
    """Flush and close the producer on shutdown."""
    global _producer
    with _producer_lock:
        if _producer is None:
            return
        try:
            _producer.flush(timeout=5)
            _producer.close(timeout=5)
        except KafkaError as e:
            logger.warning(f"Error closing Kafka producer: {e}")
        finally:
            _producer = None
