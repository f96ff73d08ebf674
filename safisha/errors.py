from typing import Any


class SafishaError(Exception):
    pass


class ApiError(SafishaError):
    """
    Non-2xx answer from the API (or a transport failure, status_code=None).
    Carries the server's error payload untouched.
    """

    def __init__(self, status_code: int | None, detail: str, payload: Any = None):
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail
        self.payload = payload if payload is not None else {}

    @property
    def is_client_error(self) -> bool:
        return self.status_code is not None and 400 <= self.status_code < 500

    @property
    def is_server_error(self) -> bool:
        return self.status_code is not None and self.status_code >= 500

    def __repr__(self):
        return f"{type(self).__name__}(status_code={self.status_code!r}, detail={self.detail!r})"


class Unauthorized(ApiError):
    pass


class TransportError(ApiError):
    def __init__(self, detail: str):
        super().__init__(None, detail)


class RequestTimeout(TransportError):
    pass


class ResponseShapeError(SafishaError):
    pass


class MissingRefreshToken(SafishaError):
    pass


class Forbidden(SafishaError):
    pass


class BusinessRegistrationRequired(SafishaError):
    pass


class ActionNotAvailable(SafishaError):
    pass


def error_detail(payload: Any, text: str, status_code: int) -> str:
    if isinstance(payload, dict):
        message = payload.get("message") or payload.get("error")
        if isinstance(message, list):
            message = "; ".join(str(m) for m in message)
        if message:
            return str(message)
    return text or f"HTTP error! status: {status_code}"
