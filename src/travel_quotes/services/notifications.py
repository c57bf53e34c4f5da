"""Best-effort email notifications with an outbox for failed deliveries.

Lifecycle operations hand messages to ``NotificationDispatcher.dispatch``
after their transaction has committed. Delivery failures are logged and
recorded in ``notification_outbox``; they never reach the caller.
"""

from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

import httpx
from attrs import field, frozen
from beartype import beartype

from ..core.config import Settings
from ..core.errors import NotifyError
from ..core.logging_utils import get_logger
from .email_templates import EmailContent
from .store import TableGateway

logger = get_logger(__name__)

OUTBOX_TABLE = "notification_outbox"


@frozen
class Recipient:
    """Email address with optional display name."""

    email: str = field()
    name: str | None = field(default=None)

    def to_payload(self) -> dict[str, str]:
        """Brevo recipient object."""
        payload = {"email": self.email}
        if self.name:
            payload["name"] = self.name
        return payload


@frozen
class EmailMessage:
    """One email to one or more recipients."""

    to: tuple[Recipient, ...] = field()
    subject: str = field()
    html_body: str = field()

    @classmethod
    def from_content(
        cls, recipients: Sequence[Recipient], content: EmailContent
    ) -> "EmailMessage":
        """Build a message from rendered template content."""
        return cls(to=tuple(recipients), subject=content.subject, html_body=content.html)


@frozen
class RetryStats:
    """Outcome of one outbox retry run."""

    attempted: int = field()
    delivered: int = field()
    still_pending: int = field()


@runtime_checkable
class Notifier(Protocol):
    """Delivers one message or raises ``NotifyError``."""

    async def send(self, message: EmailMessage) -> None: ...


class BrevoNotifier:
    """Sends transactional email through the Brevo v3 HTTP API."""

    def __init__(
        self,
        api_key: str | None,
        api_url: str,
        sender_email: str,
        sender_name: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize notifier; ``client`` is injectable for tests."""
        self._api_key = api_key
        self._api_url = api_url
        self._sender = {"name": sender_name, "email": sender_email}
        self._timeout = timeout
        self._client = client

    @classmethod
    @beartype
    def from_settings(
        cls, settings: Settings, client: httpx.AsyncClient | None = None
    ) -> "BrevoNotifier":
        """Build the notifier from application settings."""
        return cls(
            api_key=settings.brevo_api_key,
            api_url=settings.brevo_api_url,
            sender_email=settings.sender_email,
            sender_name=settings.sender_name,
            timeout=settings.notification_timeout_seconds,
            client=client,
        )

    @beartype
    async def send(self, message: EmailMessage) -> None:
        """Post the message; any non-2xx answer is a delivery failure."""
        if not self._api_key:
            raise NotifyError("BREVO_API_KEY is not set")
        if not message.to:
            raise NotifyError("message has no recipients")

        payload = {
            "sender": self._sender,
            "to": [recipient.to_payload() for recipient in message.to],
            "subject": message.subject,
            "htmlContent": message.html_body,
        }
        headers = {
            "accept": "application/json",
            "content-type": "application/json",
            "api-key": self._api_key,
        }

        try:
            if self._client is not None:
                response = await self._client.post(
                    self._api_url, json=payload, headers=headers, timeout=self._timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(
                        self._api_url, json=payload, headers=headers
                    )
        except httpx.HTTPError as e:
            raise NotifyError(f"Network error sending '{message.subject}': {e}") from e

        if not response.is_success:
            raise NotifyError(
                f"Brevo rejected '{message.subject}' with status "
                f"{response.status_code}: {response.text}"
            )

        logger.info(
            "Email '%s' sent to %s",
            message.subject,
            ", ".join(recipient.email for recipient in message.to),
        )


class NotificationDispatcher:
    """Non-critical side-effect channel for lifecycle emails."""

    def __init__(self, notifier: Notifier, gateway: TableGateway) -> None:
        """Initialize dispatcher with a notifier and the outbox gateway."""
        self._notifier = notifier
        self._gateway = gateway

    @beartype
    async def dispatch(self, message: EmailMessage) -> bool:
        """Try to deliver; on failure park the message in the outbox.

        Never raises. Returns whether delivery succeeded.
        """
        try:
            await self._notifier.send(message)
            return True
        except Exception as e:
            outbox_id = await self._record_failure(message, str(e))
            logger.warning(
                "Notification '%s' not delivered (outbox %s): %s",
                message.subject,
                outbox_id,
                e,
            )
            return False

    @beartype
    async def dispatch_all(self, messages: Sequence[EmailMessage]) -> int:
        """Dispatch each message independently; returns the delivered count."""
        delivered = 0
        for message in messages:
            if await self.dispatch(message):
                delivered += 1
        return delivered

    async def _record_failure(self, message: EmailMessage, error: str) -> UUID | None:
        try:
            rows = await self._gateway.insert(
                OUTBOX_TABLE,
                [
                    {
                        "recipients": [r.to_payload() for r in message.to],
                        "subject": message.subject,
                        "html_body": message.html_body,
                        "status": "pending",
                        "attempts": 1,
                        "last_error": error[:1000],
                    }
                ],
            )
        except Exception:
            # Outbox is best-effort as well; the message is lost but logged.
            logger.exception("Could not record '%s' in the outbox", message.subject)
            return None
        return rows[0]["id"] if rows else None

    @beartype
    async def retry_pending(self, limit: int = 50) -> RetryStats:
        """Re-send up to ``limit`` pending outbox rows, oldest first."""
        rows = await self._gateway.select_where(
            OUTBOX_TABLE, {"status": "pending"}, order_by="created_at", limit=limit
        )
        delivered = 0
        for row in rows:
            message = _message_from_row(row)
            attempts = int(row.get("attempts") or 0) + 1
            try:
                await self._notifier.send(message)
            except Exception as e:
                await self._gateway.update_where(
                    OUTBOX_TABLE,
                    row["id"],
                    {"status": "pending"},
                    {"attempts": attempts, "last_error": str(e)[:1000]},
                )
                logger.warning("Outbox %s retry %d failed: %s", row["id"], attempts, e)
                continue

            await self._gateway.update_where(
                OUTBOX_TABLE,
                row["id"],
                {"status": "pending"},
                {"status": "sent", "attempts": attempts, "last_error": None},
            )
            delivered += 1

        still_pending = len(
            await self._gateway.select_where(OUTBOX_TABLE, {"status": "pending"})
        )
        logger.info(
            "Outbox retry: %d attempted, %d delivered, %d pending",
            len(rows),
            delivered,
            still_pending,
        )
        return RetryStats(
            attempted=len(rows), delivered=delivered, still_pending=still_pending
        )


def _message_from_row(row: dict[str, Any]) -> EmailMessage:
    recipients = tuple(
        Recipient(email=item["email"], name=item.get("name"))
        for item in row.get("recipients") or []
    )
    return EmailMessage(to=recipients, subject=row["subject"], html_body=row["html_body"])


@beartype
def admin_recipients(settings: Settings) -> tuple[Recipient, ...]:
    """Operator distribution list from settings."""
    name = f"{settings.sender_name} Admin"
    return tuple(Recipient(email=email, name=name) for email in settings.admin_recipients)
