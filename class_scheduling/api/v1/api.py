# class_scheduling/api/v1/api.py

from fastapi import APIRouter
from class_scheduling.api.v1.endpoints import class_sessions, health

# This is the main router for the v1 API.
api_router = APIRouter()

api_router.include_router(health.router)
api_router.include_router(class_sessions.router)
