"""
Twilio Provider Module

Places and ends WhatsApp voice calls through the Twilio REST API and
validates the signatures Twilio attaches to its callbacks.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from twilio.base.exceptions import TwilioException, TwilioRestException
from twilio.request_validator import RequestValidator
from twilio.rest import Client

from ..config import TwilioConfig
from .base import (
    FailureKind,
    PlacedCall,
    ProviderResult,
    TelephonyProvider,
    classify_status,
)


logger = logging.getLogger(__name__)

WHATSAPP_PREFIX = "whatsapp:"

STATUS_CALLBACK_EVENTS = ["initiated", "ringing", "answered", "completed"]


def normalize_phone_number(number: str) -> str:
    """Strip a ``whatsapp:`` prefix and ensure a leading ``+``."""
    number = (number or "").strip()
    if number.lower().startswith(WHATSAPP_PREFIX):
        number = number[len(WHATSAPP_PREFIX):]
    number = number.replace(" ", "")
    if number and not number.startswith("+"):
        number = f"+{number}"
    return number


def whatsapp_address(number: str) -> str:
    return f"{WHATSAPP_PREFIX}{normalize_phone_number(number)}"


class TwilioTelephonyProvider(TelephonyProvider):
    """
    Twilio telephony provider.

    The Twilio SDK is synchronous, so REST calls run in a worker thread.
    """

    name = "twilio"

    def __init__(
        self,
        config: Optional[TwilioConfig] = None,
        client: Optional[Client] = None,
    ):
        self.config = config or TwilioConfig.from_env()
        self._client = client
        self._validator = RequestValidator(self.config.auth_token)

    def _get_client(self) -> Client:
        """Get or create Twilio client."""
        if self._client is None:
            self._client = Client(self.config.account_sid, self.config.auth_token)
        return self._client

    @property
    def from_number(self) -> str:
        return normalize_phone_number(self.config.phone_number)

    def _failure(self, exc: Exception) -> ProviderResult:
        if isinstance(exc, TwilioRestException):
            kind = classify_status(exc.status) if exc.status else FailureKind.HTTP_ERROR
            return ProviderResult.fail(
                self.name,
                kind,
                exc.msg or str(exc),
                raw_detail={"code": exc.code, "status": exc.status, "uri": exc.uri},
                status_code=exc.status,
            )
        if isinstance(exc, asyncio.TimeoutError):
            return ProviderResult.fail(
                self.name, FailureKind.TIMEOUT, "Twilio request timed out"
            )
        return ProviderResult.fail(
            self.name, FailureKind.UNKNOWN, str(exc) or "Twilio request failed"
        )

    async def place_call(
        self,
        to_number: str,
        callback_url: str,
        status_callback_url: str,
    ) -> ProviderResult[PlacedCall]:
        """
        Place an outbound WhatsApp voice call.

        Args:
            to_number: Recipient number, with or without ``whatsapp:``
            callback_url: URL Twilio fetches call instructions from
            status_callback_url: URL for call status updates

        Returns:
            Result holding the placed call's SID and initial status
        """
        if not self.from_number:
            return ProviderResult.fail(
                self.name,
                FailureKind.INVALID_REQUEST,
                "No caller number configured (TWILIO_PHONE_NUMBER)",
            )

        params: Dict[str, Any] = {
            "url": callback_url,
            "to": whatsapp_address(to_number),
            "from_": whatsapp_address(self.from_number),
            "status_callback": status_callback_url,
            "status_callback_event": STATUS_CALLBACK_EVENTS,
            "status_callback_method": "POST",
        }

        try:
            client = self._get_client()
            call = await asyncio.wait_for(
                asyncio.to_thread(client.calls.create, **params),
                timeout=self.config.timeout,
            )
        except (TwilioException, asyncio.TimeoutError, OSError) as e:
            logger.error(f"Failed to place Twilio call: {e}")
            return self._failure(e)

        logger.info(f"Placed Twilio call {call.sid} to {to_number}")
        return ProviderResult.ok(
            self.name,
            PlacedCall(
                sid=call.sid,
                status=str(call.status or "queued"),
                to_number=normalize_phone_number(to_number),
                from_number=self.from_number,
            ),
        )

    async def end_call(self, provider_call_id: str) -> ProviderResult[str]:
        """Ask Twilio to hang up a call."""
        try:
            client = self._get_client()
            call = await asyncio.wait_for(
                asyncio.to_thread(
                    client.calls(provider_call_id).update, status="completed"
                ),
                timeout=self.config.timeout,
            )
        except (TwilioException, asyncio.TimeoutError, OSError) as e:
            logger.error(f"Failed to end Twilio call {provider_call_id}: {e}")
            return self._failure(e)

        return ProviderResult.ok(self.name, str(call.status or "completed"))

    def validate_signature(
        self,
        url: str,
        params: Dict[str, Any],
        signature: Optional[str],
    ) -> bool:
        """Check ``X-Twilio-Signature`` against the URL and form params."""
        if not signature:
            return False
        return bool(self._validator.validate(url, params, signature))


__all__ = [
    "TwilioTelephonyProvider",
    "normalize_phone_number",
    "whatsapp_address",
]
