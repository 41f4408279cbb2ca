"""
Call Relay
==========

Webhook relay and call lifecycle service.

This package provides:
- Verification, normalization and forwarding of Resend email webhooks
- Scheduling, rescheduling and cancellation of AI-placed phone calls
- Call status tracking from voice-provider webhooks
- A key/value storage layer backed by Redis or process memory
"""

__version__ = "1.0.0"
