# class_scheduling/api/deps.py
from typing import Generator

import redis
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from class_scheduling.core.config import settings
from class_scheduling.db.redis import redis_client
from class_scheduling.db.session import SessionLocal
from class_scheduling.schemas.token import TokenPayload
from class_scheduling.services.directory import DirectoryClient
from class_scheduling.services.scheduling_service import SchedulingService
from class_scheduling.utils.kafka_helpers import KafkaProgressPublisher, ProgressPublisher


def get_db() -> Generator:
    """Dependency to get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_redis() -> redis.Redis:
    return redis_client


def get_directory() -> DirectoryClient:
    return DirectoryClient()


def get_progress_publisher() -> ProgressPublisher:
    return KafkaProgressPublisher()


def get_scheduling_service(
    directory: DirectoryClient = Depends(get_directory),
    redis_conn: redis.Redis = Depends(get_redis),
    publisher: ProgressPublisher = Depends(get_progress_publisher),
) -> SchedulingService:
    return SchedulingService(directory=directory, redis_client=redis_conn, publisher=publisher)


# The `tokenUrl` is only used for the OpenAPI docs; tokens are issued elsewhere.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token")


def get_current_user(token: str = Depends(oauth2_scheme)) -> TokenPayload:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=["HS256"])
        token_data = TokenPayload(**payload)
    except (JWTError, ValueError):
        # Catches any error from jose or Pydantic validation
        raise credentials_exception

    return token_data
