"""Outbound calls from the fulfillment service to its neighbours.

Only the communications service is called today: it accepts notification
records and fans them out to email/push. Calls are authenticated with a
short-lived service-role JWT and carry the current request id.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx
from libs.auth.dependencies import _service_role_jwt
from libs.common.config import get_settings
from libs.common.logging import get_logger, get_request_id

logger = get_logger(__name__)

NOTIFICATIONS_PATH = "/internal/notifications"
NOTIFICATION_TIMEOUT = 5.0


def _internal_headers(calling_service: str) -> dict[str, str]:
    headers = {
        "Authorization": f"Bearer {_service_role_jwt(calling_service)}",
        "X-Caller-Service": calling_service,
    }
    request_id = get_request_id()
    if request_id:
        headers["X-Request-ID"] = request_id
    return headers


async def internal_post(
    *,
    service_url: str,
    path: str,
    calling_service: str,
    json: Any = None,
    timeout: float = NOTIFICATION_TIMEOUT,
) -> httpx.Response:
    """POST to another service as ``calling_service``.

    Raises httpx.RequestError on connection failures; the status code is
    left for the caller to check.
    """
    async with httpx.AsyncClient(base_url=service_url, timeout=timeout) as client:
        return await client.post(
            path, json=json, headers=_internal_headers(calling_service)
        )


async def post_notification(
    *,
    notification_type: str,
    message: str,
    reference_id: Optional[str],
    recipient_auth_id: str,
    calling_service: str,
) -> None:
    """Hand a notification record to the communications service.

    Raises httpx errors; callers decide whether delivery is best-effort.
    """
    settings = get_settings()
    response = await internal_post(
        service_url=settings.COMMUNICATIONS_SERVICE_URL,
        path=NOTIFICATIONS_PATH,
        calling_service=calling_service,
        json={
            "notification_type": notification_type,
            "message": message,
            "reference_id": reference_id,
            "recipient_auth_id": recipient_auth_id,
        },
    )
    response.raise_for_status()
    logger.debug(
        "Forwarded %s notification for %s to communications service",
        notification_type,
        recipient_auth_id,
    )
