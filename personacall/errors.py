"""
Error Taxonomy

Exception hierarchy shared by the orchestration core and the HTTP layer.
Every error carries a stable code and the HTTP status it maps to, so the
API layer can translate it without inspecting its type.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Standardized error codes."""

    # Validation errors (2xxx)
    VALIDATION_ERROR = "VAL_2001"
    MISSING_REQUIRED_FIELD = "VAL_2003"
    INVALID_FIELD_VALUE = "VAL_2004"

    # Access errors (1xxx)
    SUBSCRIPTION_REQUIRED = "AUTH_1004"
    INVALID_SIGNATURE = "AUTH_1006"

    # Resource errors (3xxx)
    RESOURCE_NOT_FOUND = "RES_3001"
    NO_VOICE_AVAILABLE = "RES_3006"

    # Server errors (5xxx)
    INTERNAL_ERROR = "SRV_5001"
    PROVIDER_FAILURE = "SRV_5003"
    TIMEOUT = "SRV_5004"

    # Business logic errors (6xxx)
    INSUFFICIENT_CREDITS = "BIZ_6003"
    UNKNOWN_CALLBACK = "BIZ_6005"


class PersonaCallError(Exception):
    """Base exception for all orchestration errors."""

    status_code: int = 500

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.code = code
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(PersonaCallError):
    """Missing or malformed request fields."""

    status_code = 400

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    ):
        super().__init__(
            code=code,
            message=message,
            details={"field": field} if field else None,
        )
        self.field = field


class NotFoundError(PersonaCallError):
    """Unknown user, persona, voice or conversation."""

    status_code = 404

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        message: Optional[str] = None,
        code: ErrorCode = ErrorCode.RESOURCE_NOT_FOUND,
    ):
        if message is None:
            if resource_id:
                message = f"{resource_type} with ID '{resource_id}' not found"
            else:
                message = f"{resource_type} not found"
        super().__init__(
            code=code,
            message=message,
            details={"resource_type": resource_type, "resource_id": resource_id},
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class NoVoiceAvailable(NotFoundError):
    """No voice matched any step of the resolution chain."""

    def __init__(self, message: str = "No voice specified and no default voice found"):
        super().__init__(
            "VoiceProfile",
            message=message,
            code=ErrorCode.NO_VOICE_AVAILABLE,
        )


class AccessDenied(PersonaCallError):
    """Premium-gated resource requested by a FREE-tier user."""

    status_code = 403

    def __init__(
        self,
        message: str = "This resource requires a premium subscription",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            code=ErrorCode.SUBSCRIPTION_REQUIRED,
            message=message,
            details=details,
        )


SubscriptionRequired = AccessDenied


class CreditsExhausted(PersonaCallError):
    """The user has no call credits left."""

    status_code = 403

    def __init__(
        self,
        message: str = "Insufficient call credits. Please purchase more credits.",
        user_id: Optional[str] = None,
    ):
        super().__init__(
            code=ErrorCode.INSUFFICIENT_CREDITS,
            message=message,
            details={"user_id": user_id} if user_id else None,
        )
        self.user_id = user_id


InsufficientCredits = CreditsExhausted


class ProviderError(PersonaCallError):
    """An external collaborator failed or timed out."""

    status_code = 500

    def __init__(
        self,
        provider: str,
        message: str,
        kind: Optional[str] = None,
        raw_detail: Any = None,
    ):
        code = ErrorCode.TIMEOUT if kind == "timeout" else ErrorCode.PROVIDER_FAILURE
        super().__init__(
            code=code,
            message=message,
            details={"provider": provider, "kind": kind},
        )
        self.provider = provider
        self.kind = kind
        self.raw_detail = raw_detail


class InvalidSignature(PersonaCallError):
    """A provider callback failed authentication."""

    status_code = 403

    def __init__(self, message: str = "Invalid request signature"):
        super().__init__(code=ErrorCode.INVALID_SIGNATURE, message=message)


class UnknownCallback(PersonaCallError):
    """Status callback for a call id this system does not track."""

    status_code = 200

    def __init__(self, provider_call_id: str):
        super().__init__(
            code=ErrorCode.UNKNOWN_CALLBACK,
            message=f"No call log for provider call '{provider_call_id}'",
            details={"provider_call_id": provider_call_id},
        )
        self.provider_call_id = provider_call_id


__all__ = [
    "ErrorCode",
    "PersonaCallError",
    "ValidationError",
    "NotFoundError",
    "NoVoiceAvailable",
    "AccessDenied",
    "SubscriptionRequired",
    "CreditsExhausted",
    "InsufficientCredits",
    "ProviderError",
    "InvalidSignature",
    "UnknownCallback",
]
