"""Notification Delivery - In-app writes and push/email providers over HTTP"""
from typing import Any, Dict, List, Optional
import httpx

from ..domain.models import Notification
from ..domain.enums import NotificationKind
from ..domain.errors import EmailSendError, PushSendError
from ..repositories.notification_repo import NotificationRepository
from ..config.settings import settings
from ..utils.idgen import generate_notification_id
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


class NotificationDelivery:
    """
    Delivery capability consumed by the fan-out and the outbox dispatcher

    - ``create_in_app``: synchronous insert into the notification bell
    - ``send_push``: POST to the push gateway
    - ``send_email``: POST to the email provider; templates are rendered there
    """

    REQUEST_TIMEOUT_SECONDS = 10.0

    def __init__(self, notification_repo: Optional[NotificationRepository] = None):
        self.notification_repo = notification_repo or NotificationRepository()

    @property
    def push_enabled(self) -> bool:
        return settings.push_enabled

    @property
    def email_enabled(self) -> bool:
        return settings.email_enabled

    def create_in_app(
        self,
        user_id: str,
        team_id: str,
        kind: NotificationKind,
        title: str,
        message: str,
        intervention_id: str,
        dedup_key: str,
        metadata: Optional[Dict[str, Any]] = None,
        is_personal: bool = False,
        created_by: Optional[str] = None
    ) -> bool:
        """
        Insert an in-app notification.

        Returns:
            False when the same notification was already created
        """
        notification = Notification(
            notification_id=generate_notification_id(),
            user_id=user_id,
            team_id=team_id,
            type=kind,
            title=title,
            message=message,
            metadata=metadata or {},
            related_entity_type="intervention",
            related_entity_id=intervention_id,
            dedup_key=dedup_key,
            is_personal=is_personal,
            created_by=created_by,
            created_at=utc_now()
        )
        return self.notification_repo.create_notification(notification)

    async def send_push(self, user_ids: List[str], payload: Dict[str, Any]) -> None:
        """
        Send a push notification to the given users.

        Raises:
            PushSendError: gateway unreachable or answered with an error
        """
        try:
            async with httpx.AsyncClient(timeout=self.REQUEST_TIMEOUT_SECONDS) as client:
                response = await client.post(
                    settings.push_gateway_url,
                    headers={
                        "Authorization": f"Bearer {settings.push_gateway_key}",
                        "Content-Type": "application/json"
                    },
                    json={
                        "user_ids": user_ids,
                        "title": payload.get("title"),
                        "body": payload.get("message"),
                        "url": payload.get("url"),
                        "data": payload
                    }
                )
        except httpx.HTTPError as e:
            raise PushSendError(f"Push gateway unreachable: {e}")

        if response.status_code >= 300:
            raise PushSendError(
                f"Push gateway error: {response.status_code}",
                details={"response": response.text[:500]}
            )

    async def send_email(self, to: str, template: str, data: Dict[str, Any]) -> None:
        """
        Send a templated email.

        Raises:
            EmailSendError: provider unreachable or answered with an error
        """
        try:
            async with httpx.AsyncClient(timeout=self.REQUEST_TIMEOUT_SECONDS) as client:
                response = await client.post(
                    settings.email_api_url,
                    headers={
                        "Authorization": f"Bearer {settings.email_api_key}",
                        "Content-Type": "application/json"
                    },
                    json={
                        "from": settings.email_from,
                        "to": [to],
                        "template": template,
                        "data": data
                    }
                )
        except httpx.HTTPError as e:
            raise EmailSendError(f"Email provider unreachable: {e}")

        if response.status_code not in (200, 201, 202):
            raise EmailSendError(
                f"Email provider error: {response.status_code}",
                details={"response": response.text[:500]}
            )
