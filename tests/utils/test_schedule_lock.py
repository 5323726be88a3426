from datetime import date
from unittest.mock import MagicMock

import pytest
import redis

from class_scheduling.core.errors import ScheduleBusy
from class_scheduling.utils.schedule_lock import (
    ScheduleLock,
    instructor_lock_key,
    venue_lock_key,
)

DAY = date(2025, 3, 1)


def test_lock_keys():
    assert instructor_lock_key("inst_1", DAY) == "schedule:lock:instructor:inst_1:2025-03-01"
    assert venue_lock_key("Room 101", DAY) == "schedule:lock:venue:Room 101:2025-03-01"


def test_locks_are_taken_in_sorted_order_and_released():
    client = MagicMock()
    client.lock.return_value.acquire.return_value = True
    keys = [venue_lock_key("Room 101", DAY), instructor_lock_key("inst_1", DAY)]

    with ScheduleLock(client, keys):
        pass

    locked = [c.args[0] for c in client.lock.call_args_list]
    assert locked == sorted(keys)
    assert client.lock.return_value.release.call_count == 2


def test_timeout_raises_schedule_busy_and_releases_held_locks():
    client = MagicMock()
    first, second = MagicMock(), MagicMock()
    first.acquire.return_value = True
    second.acquire.return_value = False
    client.lock.side_effect = [first, second]

    with pytest.raises(ScheduleBusy):
        with ScheduleLock(client, ["a", "b"]):
            pytest.fail("body must not run without every lock")

    first.release.assert_called_once()
    second.release.assert_not_called()


def test_redis_outage_raises_schedule_busy():
    client = MagicMock()
    client.lock.return_value.acquire.side_effect = redis.ConnectionError("down")

    with pytest.raises(ScheduleBusy):
        with ScheduleLock(client, ["a"]):
            pass


def test_expired_lock_on_release_is_logged_not_raised():
    client = MagicMock()
    client.lock.return_value.acquire.return_value = True
    client.lock.return_value.release.side_effect = redis.exceptions.LockError("expired")

    with ScheduleLock(client, ["a"]):
        pass


def test_body_exception_propagates_after_release():
    client = MagicMock()
    client.lock.return_value.acquire.return_value = True

    with pytest.raises(KeyError):
        with ScheduleLock(client, ["a"]):
            raise KeyError("boom")
    client.lock.return_value.release.assert_called_once()
