"""
API Base Module

Request ids, the error envelope, and request-body helpers shared by the
route modules.
"""

import secrets
import time
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import Request
from starlette.datastructures import FormData

from ..errors import ErrorCode, PersonaCallError


REQUEST_ID_HEADER = "X-Request-ID"


def generate_request_id() -> str:
    """Generate a unique request ID."""
    timestamp = int(time.time() * 1000)
    random_part = secrets.token_hex(8)
    return f"req_{timestamp}_{random_part}"


def get_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id is None:
        request_id = request.headers.get(REQUEST_ID_HEADER) or generate_request_id()
        request.state.request_id = request_id
    return request_id


def error_envelope(
    request_id: str,
    code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Uniform error body returned by every endpoint."""
    return {
        "success": False,
        "error": {
            "code": code,
            "message": message,
            "details": details,
        },
        "request_id": request_id,
        "timestamp": datetime.utcnow().isoformat(),
    }


def error_from_exception(request_id: str, exc: PersonaCallError) -> Dict[str, Any]:
    return error_envelope(request_id, exc.code.value, exc.message, exc.details)


def internal_error(request_id: str) -> Dict[str, Any]:
    return error_envelope(
        request_id,
        ErrorCode.INTERNAL_ERROR.value,
        "An unexpected error occurred",
    )


def form_to_dict(form: FormData) -> Dict[str, str]:
    """Flatten form data into plain string values."""
    return {key: str(value) for key, value in form.items()}


async def read_body(request: Request) -> Dict[str, Any]:
    """
    Read a JSON or form-encoded request body into a dict.

    Empty or malformed bodies read as an empty dict.
    """
    content_type = request.headers.get("content-type", "")
    if "application/json" in content_type:
        try:
            data = await request.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}
    if (
        "application/x-www-form-urlencoded" in content_type
        or "multipart/form-data" in content_type
    ):
        return form_to_dict(await request.form())

    raw = await request.body()
    if not raw:
        return {}
    try:
        data = await request.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


__all__ = [
    "REQUEST_ID_HEADER",
    "generate_request_id",
    "get_request_id",
    "error_envelope",
    "error_from_exception",
    "internal_error",
    "form_to_dict",
    "read_body",
]
