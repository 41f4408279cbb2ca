"""
Call Lifecycle Manager

Owns call records: creates them when a call is scheduled and mutates
them on reschedule/cancel requests and on provider webhooks.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import structlog

from ..core.exceptions import InvalidStateError, NotFoundError, ValidationError
from ..storage import StorageService
from .models import CallRecord, CallStatus, CallTrigger, next_status
from .notifications import CallNotifier, LoggingNotifier
from .provider import CallProvider, CallRequest, to_iso

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


_WEBHOOK_TRIGGERS = {
    CallTrigger.START.value: CallTrigger.START,
    CallTrigger.END.value: CallTrigger.END,
    CallTrigger.FAIL.value: CallTrigger.FAIL,
}


class CallLifecycleManager:
    """
    Drives the call state machine.

    The provider is always called before anything is written, so a failed
    provider request leaves no record behind. Provider errors propagate
    unchanged and are not retried. Notifications run after the record is
    stored and their failures are only logged.
    """

    def __init__(
        self,
        storage: StorageService,
        provider: CallProvider,
        notifier: Optional[CallNotifier] = None,
        max_call_duration_minutes: int = 30,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.storage = storage
        self.provider = provider
        self.notifier = notifier if notifier is not None else LoggingNotifier()
        self.max_call_duration_minutes = max_call_duration_minutes
        self._clock = clock
        self.logger = logger.bind(service="call_lifecycle")

    # Explicit requests

    async def schedule_call(self, request: CallRequest) -> Dict[str, Any]:
        """
        Schedule a call with the provider and store its record.

        Args:
            request: Call details; ``phone_number`` and a future
                ``scheduled_time`` are required

        Returns:
            {"callId", "status", "scheduledTime"}

        Raises:
            ValidationError: Missing fields or a time in the past
            ProviderError: The provider refused the call
        """
        if not request.phone_number:
            raise ValidationError("Phone number is required", field="phoneNumber")
        if request.scheduled_time is None:
            raise ValidationError("Scheduled time is required", field="scheduledTime")

        now = self._clock()
        scheduled_time = _as_utc(request.scheduled_time)
        if scheduled_time <= now:
            raise ValidationError("Scheduled time must be in the future", field="scheduledTime")

        if request.duration_minutes is not None:
            if request.duration_minutes <= 0:
                raise ValidationError("Duration must be positive", field="duration")
            if request.duration_minutes > self.max_call_duration_minutes:
                raise ValidationError(
                    f"Duration exceeds the maximum of {self.max_call_duration_minutes} minutes",
                    field="duration",
                )

        provider_call = await self.provider.schedule_call(request)

        now_iso = to_iso(now)
        record = CallRecord(
            call_id=provider_call.call_id,
            status=CallStatus.SCHEDULED,
            phone_number=request.phone_number,
            scheduled_time=to_iso(scheduled_time),
            duration_minutes=request.duration_minutes,
            recipient_name=request.recipient_name,
            recipient_email=request.recipient_email,
            topic=request.topic,
            created_at=now_iso,
            updated_at=now_iso,
        )

        def merge(current: Optional[Dict[str, Any]]) -> Dict[str, Any]:
            # A provider webhook may have created the record first; its fields win
            data = record.to_dict()
            if current:
                data.update(current)
            return data

        stored = await self.storage.update_call_data(record.call_id, merge)
        record = CallRecord.from_dict(stored)

        self.logger.info(
            "Call scheduled",
            call_id=record.call_id,
            scheduled_time=record.scheduled_time,
        )
        await self._notify("scheduled", self.notifier.on_scheduled, record)

        return {
            "callId": record.call_id,
            "status": self._status_name(record),
            "scheduledTime": record.scheduled_time,
        }

    async def reschedule_call(
        self,
        call_id: str,
        new_time: datetime,
        reason: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Move a pending call to a new time.

        Raises:
            NotFoundError: Unknown call id
            InvalidStateError: The call already started or ended, including
                while the provider request was in flight
            ValidationError: ``new_time`` is in the past
        """
        record = await self._load(call_id)
        if next_status(record.status, CallTrigger.RESCHEDULE) is None:
            raise InvalidStateError(call_id, self._status_name(record), "reschedule")

        new_time = _as_utc(new_time)
        now = self._clock()
        if new_time <= now:
            raise ValidationError("New scheduled time must be in the future", field="newScheduledTime")

        await self.provider.reschedule_call(call_id, new_time)

        now_iso = to_iso(now)
        new_iso = to_iso(new_time)
        previous_time = record.scheduled_time

        def apply(current: Optional[Dict[str, Any]]) -> Dict[str, Any]:
            updated = self._recheck(call_id, current, record, CallTrigger.RESCHEDULE, "reschedule")
            updated.previous_scheduled_time = updated.scheduled_time
            updated.scheduled_time = new_iso
            updated.status = CallStatus.RESCHEDULED
            updated.rescheduled_at = now_iso
            updated.rescheduled_reason = reason
            updated.updated_at = now_iso
            return updated.to_dict()

        stored = CallRecord.from_dict(await self.storage.update_call_data(call_id, apply))

        self.logger.info(
            "Call rescheduled",
            call_id=call_id,
            previous_time=previous_time,
            scheduled_time=new_iso,
        )
        await self._notify("rescheduled", self.notifier.on_rescheduled, stored, previous_time, reason)

        return {
            "callId": call_id,
            "status": CallStatus.RESCHEDULED.value,
            "newScheduledTime": new_iso,
        }

    async def cancel_call(self, call_id: str, reason: Optional[str] = None) -> Dict[str, Any]:
        """
        Cancel a pending call.

        Raises:
            NotFoundError: Unknown call id
            InvalidStateError: The call already started or ended, including
                while the provider request was in flight
        """
        record = await self._load(call_id)
        if next_status(record.status, CallTrigger.CANCEL) is None:
            raise InvalidStateError(call_id, self._status_name(record), "cancel")

        await self.provider.cancel_call(call_id)

        now_iso = to_iso(self._clock())

        def apply(current: Optional[Dict[str, Any]]) -> Dict[str, Any]:
            updated = self._recheck(call_id, current, record, CallTrigger.CANCEL, "cancel")
            updated.status = CallStatus.CANCELLED
            updated.cancelled_at = now_iso
            updated.cancellation_reason = reason
            updated.updated_at = now_iso
            return updated.to_dict()

        stored = CallRecord.from_dict(await self.storage.update_call_data(call_id, apply))

        self.logger.info("Call cancelled", call_id=call_id, reason=reason)
        await self._notify("cancelled", self.notifier.on_cancelled, stored, reason)

        return {
            "callId": call_id,
            "status": CallStatus.CANCELLED.value,
            "cancelledAt": now_iso,
        }

    # Queries

    async def get_call(self, call_id: str) -> Dict[str, Any]:
        """Get a stored call record."""
        return (await self._load(call_id)).to_dict()

    async def list_calls(self, limit: int = 100) -> List[Dict[str, Any]]:
        """List stored call records."""
        records = []
        for call_id in await self.storage.list_call_ids(limit):
            data = await self.storage.get_call_data(call_id)
            if isinstance(data, dict):
                records.append(data)
        return records

    # Provider webhooks

    async def process_provider_webhook(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply a provider call event to the stored record.

        Handles ``call.started``, ``call.ended`` and ``call.failed``; other
        types only update the ``lastWebhook`` marker. A record that does not
        exist yet is created. Events that would move a finished call to a
        different status are recorded but ignored.

        Returns:
            {"success", "callId", "status"} where status is "processed",
            "ignored" or "unknown_event"
        """
        if not isinstance(event, dict):
            raise ValidationError("Webhook event must be an object")

        event_type = event.get("type")
        call_id = event.get("call_id")
        if not event_type:
            raise ValidationError("Missing event type", field="type")
        if not call_id:
            raise ValidationError("Missing call ID", field="call_id")

        now_iso = to_iso(self._clock())
        timestamp = event.get("timestamp") or now_iso
        data = event.get("data") or {}
        trigger = _WEBHOOK_TRIGGERS.get(event_type)
        outcome = {"status": "unknown_event"}

        def apply(current: Optional[Dict[str, Any]]) -> Dict[str, Any]:
            if current is None:
                self.logger.info(
                    "Creating call record from webhook",
                    call_id=call_id,
                    event_type=event_type,
                )
                record = CallRecord(
                    call_id=call_id,
                    status=CallStatus.SCHEDULED,
                    created_at=now_iso,
                )
            else:
                record = CallRecord.from_dict(current)

            record.updated_at = now_iso
            record.last_webhook = {"type": event_type, "timestamp": timestamp}

            if trigger is None:
                outcome["status"] = "unknown_event"
                return record.to_dict()

            target = next_status(record.status, trigger)
            if target is None:
                outcome["status"] = "ignored"
                return record.to_dict()

            record.status = target
            if trigger is CallTrigger.START:
                record.started_at = timestamp
                if data.get("duration_estimate") is not None:
                    record.estimated_duration = data["duration_estimate"]
            elif trigger is CallTrigger.END:
                record.ended_at = timestamp
                record.actual_duration = data.get("duration")
                record.outcome = data.get("outcome")
            elif trigger is CallTrigger.FAIL:
                record.failed_at = timestamp
                record.failure_reason = data.get("reason")
                record.error = data.get("error")

            outcome["status"] = "processed"
            return record.to_dict()

        stored = await self.storage.update_call_data(call_id, apply)

        log = self.logger.warning if outcome["status"] == "ignored" else self.logger.info
        log(
            "Provider webhook handled",
            call_id=call_id,
            event_type=event_type,
            result=outcome["status"],
            call_status=stored.get("status"),
        )

        return {"success": True, "callId": call_id, "status": outcome["status"]}

    # Helpers

    async def _load(self, call_id: str) -> CallRecord:
        if not call_id:
            raise ValidationError("Call ID is required", field="callId")
        data = await self.storage.get_call_data(call_id)
        if not isinstance(data, dict):
            raise NotFoundError("Call", call_id)
        data.setdefault("callId", call_id)
        return CallRecord.from_dict(data)

    def _recheck(
        self,
        call_id: str,
        current: Optional[Dict[str, Any]],
        loaded: CallRecord,
        trigger: CallTrigger,
        operation: str,
    ) -> CallRecord:
        """Re-validate a transition against the record read under the update lock."""
        record = CallRecord.from_dict(current) if current else loaded
        if next_status(record.status, trigger) is None:
            self.logger.warning(
                "Call changed state during provider request",
                call_id=call_id,
                operation=operation,
                call_status=self._status_name(record),
            )
            raise InvalidStateError(call_id, self._status_name(record), operation)
        return record

    @staticmethod
    def _status_name(record: CallRecord) -> str:
        if record.status is not None:
            return record.status.value
        return str(record.extra.get("status", "unknown"))

    async def _notify(self, event: str, handler: Callable, record: CallRecord, *args: Any) -> None:
        try:
            await handler(record, *args)
        except Exception:
            self.logger.exception(
                "Call notification failed",
                call_id=record.call_id,
                notification=event,
            )
