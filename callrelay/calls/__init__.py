"""
Calls Module

Scheduling and lifecycle tracking for AI-placed phone calls.
"""

from .manager import CallLifecycleManager
from .models import CallRecord, CallStatus, CallTrigger, DEFAULT_TRANSITIONS, next_status
from .notifications import CallNotifier, LoggingNotifier
from .provider import BlandAIProvider, CallProvider, CallRequest, ProviderCall

__all__ = [
    "BlandAIProvider",
    "CallLifecycleManager",
    "CallNotifier",
    "CallProvider",
    "CallRecord",
    "CallRequest",
    "CallStatus",
    "CallTrigger",
    "DEFAULT_TRANSITIONS",
    "LoggingNotifier",
    "ProviderCall",
    "next_status",
]
