# class_scheduling/services/directory.py
"""
Client for the course and user services.

Courses, users and course enrollments are owned elsewhere; the scheduling
engine only reads them over their internal HTTP APIs.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

from class_scheduling.core.config import settings
from class_scheduling.core.errors import UpstreamServiceError

logger = logging.getLogger(__name__)


class DirectoryClient:
    def __init__(
        self,
        course_service_url: str = None,
        user_service_url: str = None,
        api_key: str = None,
        timeout: float = None,
        transport: httpx.BaseTransport = None,
    ):
        self.course_service_url = (course_service_url or settings.COURSE_SERVICE_URL).rstrip("/")
        self.user_service_url = (user_service_url or settings.USER_SERVICE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.INTERNAL_API_KEY
        self.timeout = timeout or settings.DIRECTORY_TIMEOUT_SECONDS
        self.transport = transport

    def _get(self, url: str, params: dict = None) -> Optional[Any]:
        """GET a JSON document. Returns None on 404."""
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.get(url, params=params, headers={"x-api-key": self.api_key})
        except httpx.TimeoutException as e:
            logger.error(f"Timeout calling {url}")
            raise UpstreamServiceError(
                "Directory service timed out", details={"url": url}
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Error calling {url}: {e}")
            raise UpstreamServiceError(
                "Directory service unavailable", details={"url": url}
            ) from e

        if response.status_code == 404:
            return None
        if response.status_code != 200:
            logger.error(f"Directory call {url} failed: HTTP {response.status_code}")
            raise UpstreamServiceError(
                f"Directory service returned HTTP {response.status_code}",
                details={"url": url, "status_code": response.status_code},
            )
        return response.json()

    def get_course_by_id(self, course_id: str) -> Optional[Dict[str, Any]]:
        """Course document (id, title, price, currency, ...) or None."""
        return self._get(f"{self.course_service_url}/internal/courses/{course_id}")

    def get_user_by_id(self, user_id: str) -> Optional[Dict[str, Any]]:
        """User document (id, role, email, ...) or None."""
        return self._get(f"{self.user_service_url}/internal/users/{user_id}")

    def list_active_course_students(self, course_id: str) -> List[str]:
        data = self._get(
            f"{self.course_service_url}/internal/courses/{course_id}/enrollments",
            params={"status": "active"},
        )
        if not data:
            return []
        # Accept either a bare list or {"items": [...]}
        items = data.get("items", []) if isinstance(data, dict) else data
        student_ids = []
        for item in items:
            student_id = item.get("studentId") or item.get("userId") or item.get("student_id")
            if student_id:
                student_ids.append(student_id)
        return student_ids
