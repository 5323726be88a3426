# class_scheduling/db/redis.py
import redis
from class_scheduling.core.config import settings


def get_redis_client():
    """
    Creates and returns a new Redis client instance.
    The client connects lazily, so creating it never touches the network.
    """
    return redis.from_url(settings.REDIS_URL, decode_responses=True)


# Shared instance used for the scheduling locks.
redis_client = get_redis_client()
