"""
PersonaCall
===========

Conversation and call orchestration for AI personas reachable over
WhatsApp text and voice calls.

This package provides:
- Outbound call lifecycle tracking driven by provider status callbacks
- A turn pipeline (transcription, completion, speech synthesis)
- Layered voice and persona resolution
- Call-credit accounting and premium-tier gating
- FastAPI endpoints for the webhook, call, and turn surfaces
"""

__version__ = "1.0.0"
