"""Application error type and the closed set of error codes."""

import inspect
from enum import Enum, IntEnum
from uuid import uuid4


class AppErrorCode(str, Enum):
    """Every failure the service can report.

    Callers match on ``AppError.errcode``; no other exception type is raised
    by the coordination core.
    """

    # Session coordination
    E_SESSION_NOT_FOUND = "E_SESSION_NOT_FOUND"
    E_SESSION_ENDED = "E_SESSION_ENDED"
    E_SESSION_NOT_ENDED = "E_SESSION_NOT_ENDED"
    E_INVALID_TRANSITION = "E_INVALID_TRANSITION"
    E_UNAUTHORIZED = "E_UNAUTHORIZED"
    E_FORBIDDEN = "E_FORBIDDEN"
    E_CAPACITY_EXCEEDED = "E_CAPACITY_EXCEEDED"
    E_ALREADY_MEMBER = "E_ALREADY_MEMBER"
    E_NOT_A_MEMBER = "E_NOT_A_MEMBER"
    E_NOT_IN_SESSION = "E_NOT_IN_SESSION"
    E_MUTED = "E_MUTED"
    E_PAYMENT_NOT_FOUND = "E_PAYMENT_NOT_FOUND"

    # Collaborators
    E_PAYMENT_PROVIDER = "E_PAYMENT_PROVIDER"
    E_VIDEO_PROVIDER = "E_VIDEO_PROVIDER"
    E_WEBHOOK_INVALID_SIGNATURE = "E_WEBHOOK_INVALID_SIGNATURE"
    E_WEBHOOK_CONFIG_MISSING = "E_WEBHOOK_CONFIG_MISSING"

    # Generic
    E_INVALID_REQUEST = "E_INVALID_REQUEST"
    E_INVALID_PARAMS = "E_INVALID_PARAMS"
    E_BAD_TOKEN = "E_BAD_TOKEN"
    E_INTERNAL_ERROR = "E_INTERNAL_ERROR"

    def __str__(self) -> str:
        return self.value


class HttpStatusCode(IntEnum):
    OK = 200
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    CONFLICT = 409
    UNPROCESSABLE_ENTITY = 422
    INTERNAL_SERVER_ERROR = 500
    BAD_GATEWAY = 502


class AppError(Exception):
    """Error raised by domain and service code.

    Captures the raising call site so the API error handler can log where the
    failure originated.
    """

    def __init__(
        self,
        errcode: AppErrorCode,
        errmesg: str,
        status_code: HttpStatusCode | int = HttpStatusCode.BAD_REQUEST,
    ):
        super().__init__(errmesg)
        self.errcode = AppErrorCode(errcode)
        self.errmesg = errmesg
        self.status_code = int(status_code)
        self.erresid = uuid4().hex[:10]
        self.caller_info = self._capture_caller()

    @staticmethod
    def _capture_caller() -> str:
        frame = inspect.currentframe()
        try:
            # Skip _capture_caller and __init__
            caller = frame.f_back.f_back if frame and frame.f_back else None
            if caller is None:
                return "unknown"
            module = inspect.getmodule(caller)
            module_name = module.__name__ if module else caller.f_code.co_filename
            return f"{module_name}:{caller.f_code.co_name}:{caller.f_lineno}"
        finally:
            del frame

    def __repr__(self) -> str:
        return f"AppError({self.errcode.value}, {self.errmesg!r}, status_code={self.status_code})"


__all__ = ["AppError", "AppErrorCode", "HttpStatusCode"]
