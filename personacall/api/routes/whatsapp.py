"""
WhatsApp API Routes

Inbound message webhook, outbound call initiation, call status
callbacks, and call termination.
"""

import logging
from typing import Dict, Optional

from fastapi import APIRouter, Depends, Path, Request
from pydantic import BaseModel, ConfigDict, Field

from ...calls.manager import CallLifecycleManager
from ...config import Settings
from ...errors import UnknownCallback
from ..base import read_body
from ..dependencies import (
    callback_url,
    get_call_manager,
    get_settings,
    verified_callback_params,
)


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/whatsapp", tags=["WhatsApp"])


# =============================================================================
# Request/Response Models
# =============================================================================


class CallRequest(BaseModel):
    """Request to start an outbound WhatsApp call."""

    model_config = ConfigDict(populate_by_name=True)

    phone_number: Optional[str] = Field(
        default=None,
        alias="phoneNumber",
        description="Number to call (E.164, optionally prefixed with whatsapp:)",
    )
    persona_id: Optional[str] = Field(default=None, alias="personaId")
    conversation_id: Optional[str] = Field(default=None, alias="conversationId")
    user_id: Optional[str] = Field(default=None, alias="userId")


class CallResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str = "WhatsApp call initiated"
    sid: str
    status: str
    conversation_id: str = Field(alias="conversationId")
    call_log_id: str = Field(alias="callLogId")


# =============================================================================
# Webhook
# =============================================================================


@router.post("/webhook")
async def whatsapp_webhook(
    request: Request,
    settings: Settings = Depends(get_settings),
    manager: CallLifecycleManager = Depends(get_call_manager),
):
    """
    Receive an inbound WhatsApp message.

    A body equal to the trigger phrase starts a voice call to the sender;
    anything else is acknowledged without action. The request must carry
    a valid provider signature.
    """
    body = await read_body(request)
    manager.validate_callback(
        callback_url(request, settings),
        {key: str(value) for key, value in body.items()},
        request.headers.get("X-Twilio-Signature"),
    )

    message_body = body.get("Body") or body.get("body") or ""
    sender = body.get("From") or body.get("from") or ""
    persona_id = body.get("personaId") or None

    logger.info("Received WhatsApp webhook", extra={"from_number": sender})

    result = await manager.handle_inbound_message(message_body, sender, persona_id)
    response: Dict[str, Optional[str]] = {"message": result.message}
    if result.call is not None:
        response["sid"] = result.call.sid
    return response


@router.get("/webhook")
async def whatsapp_webhook_status():
    return {"message": "WhatsApp webhook endpoint is active."}


# =============================================================================
# Calls
# =============================================================================


@router.post("/call", response_model=CallResponse, response_model_by_alias=True)
async def initiate_call(
    payload: CallRequest,
    manager: CallLifecycleManager = Depends(get_call_manager),
):
    """Place an outbound WhatsApp voice call for a user."""
    call = await manager.initiate_call(
        payload.phone_number,
        user_id=payload.user_id,
        persona_id=payload.persona_id,
        conversation_id=payload.conversation_id,
    )
    return CallResponse(
        sid=call.sid,
        status=call.status,
        conversation_id=call.conversation_id,
        call_log_id=call.call_log_id,
    )


@router.post("/call-status")
async def call_status_callback(
    params: Dict[str, str] = Depends(verified_callback_params),
    manager: CallLifecycleManager = Depends(get_call_manager),
):
    """
    Apply a provider call status update.

    Always acknowledged, including for calls this service does not track,
    so the provider does not retry.
    """
    call_sid = params.get("CallSid")
    if not call_sid:
        logger.warning("Call status update without CallSid")
        return {"received": True}

    try:
        await manager.on_status_callback(
            call_sid,
            params.get("CallStatus"),
            duration=params.get("CallDuration"),
            error_message=params.get("ErrorMessage"),
        )
    except UnknownCallback:
        logger.warning(f"Call status update for unknown call SID: {call_sid}")
    return {"received": True}


@router.post("/call/{call_sid}/end")
async def end_call(
    call_sid: str = Path(..., description="Provider call SID"),
    manager: CallLifecycleManager = Depends(get_call_manager),
):
    """Ask the provider to hang up; the status callback records the outcome."""
    status = await manager.end_call(call_sid)
    return {"success": True, "sid": call_sid, "status": status}
