"""API route modules."""

from .calls import router as calls_router
from .webhooks import router as webhooks_router

__all__ = ["calls_router", "webhooks_router"]
