"""
Call Records and Transitions

Defines the persisted call record and the table of allowed status
transitions for explicit requests and provider webhooks.
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, List, Optional


class CallStatus(str, Enum):
    """Call statuses."""
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    RESCHEDULED = "rescheduled"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        """Check if no further transitions are expected."""
        return self in {
            CallStatus.COMPLETED,
            CallStatus.FAILED,
            CallStatus.CANCELLED,
        }

    @classmethod
    def parse(cls, value: Any) -> Optional["CallStatus"]:
        """Map a stored or provider status string, None if unrecognized."""
        try:
            return cls(value)
        except ValueError:
            return None


class CallTrigger(str, Enum):
    """Events that move a call between statuses."""
    RESCHEDULE = "reschedule"
    CANCEL = "cancel"
    START = "call.started"
    END = "call.ended"
    FAIL = "call.failed"


@dataclass(frozen=True)
class StateTransition:
    """Represents a valid state transition."""
    from_state: CallStatus
    trigger: CallTrigger
    to_state: CallStatus


_PENDING = (CallStatus.SCHEDULED, CallStatus.RESCHEDULED)

DEFAULT_TRANSITIONS: List[StateTransition] = [
    # Explicit requests only apply before the call starts
    *[StateTransition(s, CallTrigger.RESCHEDULE, CallStatus.RESCHEDULED) for s in _PENDING],
    *[StateTransition(s, CallTrigger.CANCEL, CallStatus.CANCELLED) for s in _PENDING],
    # Provider events; webhooks may skip call.started
    *[StateTransition(s, CallTrigger.START, CallStatus.IN_PROGRESS) for s in _PENDING],
    StateTransition(CallStatus.IN_PROGRESS, CallTrigger.START, CallStatus.IN_PROGRESS),
    *[
        StateTransition(s, CallTrigger.END, CallStatus.COMPLETED)
        for s in (*_PENDING, CallStatus.IN_PROGRESS, CallStatus.COMPLETED)
    ],
    *[
        StateTransition(s, CallTrigger.FAIL, CallStatus.FAILED)
        for s in (*_PENDING, CallStatus.IN_PROGRESS, CallStatus.FAILED)
    ],
]

_TRANSITION_INDEX: Dict[tuple, CallStatus] = {
    (t.from_state, t.trigger): t.to_state for t in DEFAULT_TRANSITIONS
}


def next_status(current: Optional[CallStatus], trigger: CallTrigger) -> Optional[CallStatus]:
    """
    Look up the status a trigger leads to.

    Args:
        current: Current status; None is treated as scheduled
        trigger: The request or provider event

    Returns:
        The target status, or None if the transition is not allowed
    """
    return _TRANSITION_INDEX.get((current or CallStatus.SCHEDULED, trigger))


def _wire_name(name: str) -> str:
    first, *rest = name.split("_")
    return first + "".join(part.title() for part in rest)


@dataclass
class CallRecord:
    """
    One scheduled, active or finished call.

    Stored as a camelCase JSON object under ``call:<call_id>``. Keys this
    class does not know are kept in ``extra`` and written back unchanged.
    """
    call_id: str
    status: Optional[CallStatus] = CallStatus.SCHEDULED
    phone_number: Optional[str] = None
    scheduled_time: Optional[str] = None
    duration_minutes: Optional[int] = None
    recipient_name: Optional[str] = None
    recipient_email: Optional[str] = None
    topic: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    # in_progress
    started_at: Optional[str] = None
    estimated_duration: Optional[Any] = None

    # completed
    ended_at: Optional[str] = None
    actual_duration: Optional[Any] = None
    outcome: Optional[Any] = None

    # failed
    failed_at: Optional[str] = None
    failure_reason: Optional[str] = None
    error: Optional[Any] = None

    # cancelled
    cancelled_at: Optional[str] = None
    cancellation_reason: Optional[str] = None

    # rescheduled
    rescheduled_at: Optional[str] = None
    rescheduled_reason: Optional[str] = None
    previous_scheduled_time: Optional[str] = None

    last_webhook: Optional[Dict[str, Any]] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the stored representation, omitting unset fields."""
        data = dict(self.extra)
        for f in fields(self):
            if f.name == "extra":
                continue
            value = getattr(self, f.name)
            if value is None:
                continue
            if isinstance(value, CallStatus):
                value = value.value
            data[_wire_name(f.name)] = value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CallRecord":
        """Create from the stored representation."""
        known = {_wire_name(f.name): f.name for f in fields(cls) if f.name != "extra"}
        kwargs: Dict[str, Any] = {}
        extra: Dict[str, Any] = {}

        for key, value in data.items():
            if key in known:
                kwargs[known[key]] = value
            else:
                extra[key] = value

        if "status" in kwargs:
            status = CallStatus.parse(kwargs["status"])
            if status is None:
                # Keep unrecognized statuses readable without losing them
                extra["status"] = kwargs["status"]
            kwargs["status"] = status

        kwargs.setdefault("call_id", data.get("callId", ""))
        return cls(extra=extra, **kwargs)
