"""Append-only audit log of lifecycle events."""

from uuid import UUID

from beartype import beartype

from ..core.logging_utils import get_logger
from ..models.quote import QuoteTimelineEntry, TimelineActor
from .store import TableGateway

logger = get_logger(__name__)


class TimelineLogger:
    """Writes timeline entries.

    Pass the gateway of the transaction that changes the status so that the
    entry commits or rolls back together with it. Entries are never updated
    or deleted.
    """

    @beartype
    async def append(
        self,
        gateway: TableGateway,
        request_id: UUID,
        action: str,
        details: str | None,
        actor: TimelineActor,
    ) -> QuoteTimelineEntry:
        """Insert one entry and return it as stored."""
        rows = await gateway.insert(
            "quote_timeline",
            [
                {
                    "request_id": request_id,
                    "action": action,
                    "details": details,
                    "actor": actor.value,
                }
            ],
        )
        entry = QuoteTimelineEntry.from_row(rows[0])
        logger.info("Timeline %s: %s (%s)", request_id, action, actor.value)
        return entry
