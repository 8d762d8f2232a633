from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    LINK_MISSING = "LINK_MISSING"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    STEPS_INCOMPLETE = "STEPS_INCOMPLETE"
    CONFLICT = "CONFLICT"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    INTERNAL = "INTERNAL"


class GateError(Exception):
    code = ErrorCode.INTERNAL
    status_code = 500
    default_message = "Internal Server Error"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "code": self.code.value}


class LinkNotFound(GateError):
    code = ErrorCode.NOT_FOUND
    status_code = 404
    default_message = "Link not found or inactive"


class SessionNotFound(GateError):
    code = ErrorCode.NOT_FOUND
    status_code = 404
    default_message = "Session not found"


class AdNotFound(GateError):
    code = ErrorCode.NOT_FOUND
    status_code = 404
    default_message = "Ad not found"


class SessionExpired(GateError):
    # 410 tells the caller to restart the flow rather than retry the step
    code = ErrorCode.SESSION_EXPIRED
    status_code = 410
    default_message = "Session expired"


class StepsIncomplete(GateError):
    code = ErrorCode.STEPS_INCOMPLETE
    status_code = 403
    default_message = "Please complete all verification steps"


class LinkMissing(GateError):
    code = ErrorCode.LINK_MISSING
    status_code = 404
    default_message = "Link not found"


class Conflict(GateError):
    code = ErrorCode.CONFLICT
    status_code = 409
    default_message = "Identifier already exists"


class Unauthorized(GateError):
    code = ErrorCode.UNAUTHORIZED
    status_code = 401
    default_message = "Unauthorized"
