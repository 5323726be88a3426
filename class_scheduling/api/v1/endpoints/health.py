# class_scheduling/api/v1/endpoints/health.py
"""
Health check endpoints for monitoring system status.
"""
import redis
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from class_scheduling.api import deps

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("")
def health_check():
    """Basic health check - API is responding."""
    return {"status": "healthy", "service": "class-scheduling-service"}


@router.get("/db")
def database_health(db: Session = Depends(deps.get_db)):
    try:
        db.execute(text("SELECT 1"))
        return {"status": "healthy", "component": "database"}
    except SQLAlchemyError as e:
        raise HTTPException(status_code=503, detail=f"Database unhealthy: {e}")


@router.get("/redis")
def redis_health(redis_conn: redis.Redis = Depends(deps.get_redis)):
    """The scheduling locks live in Redis; without it no class can be created."""
    try:
        redis_conn.ping()
        return {"status": "healthy", "component": "redis"}
    except redis.RedisError as e:
        raise HTTPException(status_code=503, detail=f"Redis unhealthy: {e}")
