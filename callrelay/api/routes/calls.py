"""Call scheduling routes."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from ...calls import CallLifecycleManager, CallRequest
from ...calls.schemas import CancelCallRequest, RescheduleCallRequest, ScheduleCallRequest
from ..dependencies import get_call_manager

router = APIRouter(prefix="/calls", tags=["calls"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def schedule_call(
    body: ScheduleCallRequest,
    manager: CallLifecycleManager = Depends(get_call_manager),
):
    """Schedule an agent call."""
    result = await manager.schedule_call(
        CallRequest(
            phone_number=body.phone_number,
            scheduled_time=body.scheduled_time,
            duration_minutes=body.duration,
            recipient_name=body.recipient_name,
            recipient_email=body.recipient_email,
            topic=body.topic,
            description=body.description,
        )
    )
    return {"success": True, "data": result}


@router.get("")
async def list_calls(
    limit: int = Query(100, ge=1, le=1000),
    manager: CallLifecycleManager = Depends(get_call_manager),
):
    """List stored calls."""
    return {"success": True, "data": await manager.list_calls(limit)}


@router.get("/{call_id}")
async def get_call(
    call_id: str,
    manager: CallLifecycleManager = Depends(get_call_manager),
):
    """Get a call record."""
    return {"success": True, "data": await manager.get_call(call_id)}


@router.post("/{call_id}/reschedule")
async def reschedule_call(
    call_id: str,
    body: RescheduleCallRequest,
    manager: CallLifecycleManager = Depends(get_call_manager),
):
    """Move a call to a new time."""
    result = await manager.reschedule_call(call_id, body.new_scheduled_time, body.reason)
    return {"success": True, "data": result}


@router.post("/{call_id}/cancel")
async def cancel_call(
    call_id: str,
    body: Optional[CancelCallRequest] = None,
    manager: CallLifecycleManager = Depends(get_call_manager),
):
    """Cancel a call."""
    reason = body.reason if body else None
    return {"success": True, "data": await manager.cancel_call(call_id, reason)}
