"""Call notification hooks (confirmation email, calendar invites)."""

from abc import ABC, abstractmethod
from typing import Optional

import structlog

from .models import CallRecord

logger = structlog.get_logger(__name__)


class CallNotifier(ABC):
    """
    Receives lifecycle events after they are persisted.

    Implementations send confirmation emails and calendar updates.
    Exceptions raised here are logged by the lifecycle manager and do
    not fail the operation.
    """

    @abstractmethod
    async def on_scheduled(self, record: CallRecord) -> None:
        """A call was scheduled."""

    @abstractmethod
    async def on_rescheduled(
        self,
        record: CallRecord,
        previous_time: Optional[str],
        reason: Optional[str],
    ) -> None:
        """A call moved to a new time."""

    @abstractmethod
    async def on_cancelled(self, record: CallRecord, reason: Optional[str]) -> None:
        """A call was cancelled."""


class LoggingNotifier(CallNotifier):
    """Notifier that only records events in the log."""

    def __init__(self) -> None:
        self.logger = logger.bind(service="notifications")

    async def on_scheduled(self, record: CallRecord) -> None:
        self.logger.info(
            "Call scheduled notification",
            call_id=record.call_id,
            scheduled_time=record.scheduled_time,
            has_recipient_email=bool(record.recipient_email),
        )

    async def on_rescheduled(
        self,
        record: CallRecord,
        previous_time: Optional[str],
        reason: Optional[str],
    ) -> None:
        self.logger.info(
            "Call rescheduled notification",
            call_id=record.call_id,
            previous_time=previous_time,
            scheduled_time=record.scheduled_time,
            reason=reason,
        )

    async def on_cancelled(self, record: CallRecord, reason: Optional[str]) -> None:
        self.logger.info(
            "Call cancelled notification",
            call_id=record.call_id,
            reason=reason,
        )
