# class_scheduling/utils/kafka_helpers.py
"""
Progress event publishing.

Attendance marked present or late credits the student with one completed
lesson and the session's hours on their course enrollment. The enrollment
owner consumes these events; this service never waits on the result.
"""
import logging
import queue
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Protocol

from kafka.errors import KafkaTimeoutError

from class_scheduling.core.config import settings
from class_scheduling.core.kafka_producer import get_kafka_singleton, mark_kafka_unavailable

logger = logging.getLogger(__name__)


@dataclass
class ProgressEvent:
    course_id: str
    student_id: str
    session_id: str
    lessons_delta: int
    hours_delta: float
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_payload(self) -> dict:
        return {
            "type": "CLASS_ATTENDED",
            "courseId": self.course_id,
            "studentId": self.student_id,
            "sessionId": self.session_id,
            "lessonsDelta": self.lessons_delta,
            "hoursDelta": self.hours_delta,
            "occurredAt": self.occurred_at.isoformat(),
        }


class ProgressPublisher(Protocol):
    def publish(self, event: ProgressEvent) -> None:
        """Fire and forget. Must not raise."""
        ...


def _on_send_error(event: ProgressEvent, exc: Exception) -> None:
    logger.error(
        f"Progress event for student {event.student_id} "
        f"(course {event.course_id}, session {event.session_id}) was not delivered: {exc}"
    )


def publish_progress_event(event: ProgressEvent) -> bool:
    """
    Queue a progress event on the progress topic.

    Returns:
        bool: True if the event was handed to the producer, False otherwise
    """
    try:
        producer = get_kafka_singleton()

        if producer is None:
            logger.warning(
                f"Kafka producer unavailable, dropping progress event for student {event.student_id}"
            )
            return False

        # Keyed by enrollment so one student's updates stay ordered per course
        future = producer.send(
            settings.PROGRESS_EVENTS_TOPIC,
            key=f"{event.course_id}:{event.student_id}",
            value=event.to_payload(),
        )
        future.add_errback(_on_send_error, event)

        logger.info(
            f"Queued progress event for student {event.student_id}, session {event.session_id}"
        )
        return True

    except KafkaTimeoutError as e:
        # Brokers unreachable for max_block_ms; stop paying that wait per event
        mark_kafka_unavailable()
        logger.error(f"Timed out publishing progress event: {e}")
        return False
    except Exception as e:
        logger.error(f"Failed to publish progress event: {e}", exc_info=True)
        return False


class ProgressOutbox:
    """
    Bounded in-memory outbox drained by a background sender thread.

    `put` never blocks: when the outbox is full the event is dropped and
    logged. The sender thread is started on first use.
    """

    def __init__(self, send=publish_progress_event, maxsize: int = None):
        self._send = send
        self._queue: "queue.Queue[Optional[ProgressEvent]]" = queue.Queue(
            maxsize=maxsize or settings.PROGRESS_OUTBOX_SIZE
        )
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    def _ensure_started(self) -> None:
        with self._lock:
            if self._thread is None or not self._thread.is_alive():
                self._thread = threading.Thread(
                    target=self._run, name="progress-outbox", daemon=True
                )
                self._thread.start()

    def put(self, event: ProgressEvent) -> bool:
        self._ensure_started()
        try:
            self._queue.put_nowait(event)
            return True
        except queue.Full:
            logger.warning(
                f"Progress outbox full, dropping event for student {event.student_id} "
                f"(session {event.session_id})"
            )
            return False

    def _run(self) -> None:
        while True:
            event = self._queue.get()
            try:
                if event is None:
                    return
                self._send(event)
            except Exception as e:
                logger.error(f"Progress outbox sender failed: {e}", exc_info=True)
            finally:
                self._queue.task_done()

    def stop(self, timeout: float = 5.0) -> None:
        """Let the sender drain what is queued, then end the thread."""
        with self._lock:
            thread = self._thread
            self._thread = None
        if thread is None or not thread.is_alive():
            return
        try:
            self._queue.put(None, timeout=timeout)
        except queue.Full:
            logger.warning("Progress outbox still full at shutdown, queued events dropped")
            return
        thread.join(timeout)


progress_outbox = ProgressOutbox()


class KafkaProgressPublisher:
    def __init__(self, outbox: ProgressOutbox = None):
        self.outbox = outbox or progress_outbox

    def publish(self, event: ProgressEvent) -> None:
        self.outbox.put(event)
