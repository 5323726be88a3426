# class_scheduling/utils/schedule_lock.py
"""
Redis locks that serialise check-then-create on instructor and venue days.

Two requests that would both pass the overlap check for the same
(instructor, date) or (venue, date) must not both insert, so the check and
the insert run while holding the lock for every key they touch.
"""
import logging
from datetime import date
from typing import Iterable, List

import redis

from class_scheduling.core.config import settings
from class_scheduling.core.errors import ScheduleBusy

logger = logging.getLogger(__name__)


def instructor_lock_key(instructor_id: str, scheduled_date: date) -> str:
    return f"schedule:lock:instructor:{instructor_id}:{scheduled_date.isoformat()}"


def venue_lock_key(venue: str, scheduled_date: date) -> str:
    return f"schedule:lock:venue:{venue}:{scheduled_date.isoformat()}"


class ScheduleLock:
    """
    Acquire a set of Redis locks in sorted key order, release in reverse.

    Usage:
        with ScheduleLock(redis_client, [instructor_key, venue_key]):
            check_conflicts()
            insert_session()
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        keys: Iterable[str],
        timeout: int = None,
        wait: float = None,
    ):
        self.redis_client = redis_client
        # Sorted so concurrent callers always lock in the same order
        self.keys = sorted(set(keys))
        self.timeout = timeout or settings.SCHEDULE_LOCK_TIMEOUT_SECONDS
        self.wait = wait if wait is not None else settings.SCHEDULE_LOCK_WAIT_SECONDS
        self._held: List = []

    def __enter__(self) -> "ScheduleLock":
        for key in self.keys:
            try:
                lock = self.redis_client.lock(
                    key, timeout=self.timeout, blocking_timeout=self.wait
                )
                acquired = lock.acquire()
            except redis.RedisError as e:
                self._release_all()
                logger.error(f"Redis unavailable while locking {key}: {e}")
                raise ScheduleBusy(
                    "Scheduling is temporarily unavailable, please retry",
                    details={"lock": key},
                ) from e

            if not acquired:
                self._release_all()
                logger.info(f"Timed out waiting for schedule lock {key}")
                raise ScheduleBusy(
                    "Another booking for this instructor or venue is in progress, please retry",
                    details={"lock": key},
                )
            self._held.append((key, lock))
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self._release_all()
        return False

    def _release_all(self) -> None:
        while self._held:
            key, lock = self._held.pop()
            try:
                lock.release()
            except redis.exceptions.LockError as e:
                # The lock expired before we finished; the write already happened.
                logger.warning(f"Schedule lock {key} was no longer held on release: {e}")
