"""
HTTP API

FastAPI application exposing the WhatsApp, voice and AI endpoints.
"""

from .app import create_app, run_server

__all__ = ["create_app", "run_server"]
