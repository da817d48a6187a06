from typing import Any, Optional

from fastapi import status

class BaseAppException(Exception):
    def __init__(self, code: str, message: str, http_status: int):
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)

class NotFoundError(BaseAppException):
    def __init__(self, code: str, message: str):
        super().__init__(code, message, status.HTTP_404_NOT_FOUND)

class ForbiddenError(BaseAppException):
    def __init__(self, code: str, message: str):
        super().__init__(code, message, status.HTTP_403_FORBIDDEN)

class ValidationAppError(BaseAppException):
    def __init__(self, code: str, message: str):
        super().__init__(code, message, status.HTTP_400_BAD_REQUEST)

class ConfigurationError(BaseAppException):
    def __init__(self, code: str, message: str):
        super().__init__(code, message, status.HTTP_500_INTERNAL_SERVER_ERROR)


class HandshakeError(BaseAppException):
    """State, tenant, code or verifier did not line up at callback time."""
    def __init__(self, code: str, message: str):
        super().__init__(code, message, status.HTTP_400_BAD_REQUEST)

class AuthorizationDeclined(BaseAppException):
    def __init__(self, message: str):
        super().__init__("OAUTH_DECLINED", message, status.HTTP_400_BAD_REQUEST)

class ScopeValidationError(BaseAppException):
    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(
            "OAUTH_SCOPES_MISSING",
            f"Required scopes not granted: {' '.join(missing)}",
            status.HTTP_400_BAD_REQUEST,
        )

class TokenExchangeError(BaseAppException):
    def __init__(self, status_code: Optional[int], body: Any, message: str = "token exchange failed"):
        self.status_code = status_code
        self.body = body
        super().__init__("TOKEN_EXCHANGE_FAILED", f"{message} (status={status_code})", status.HTTP_502_BAD_GATEWAY)

class ProfileFetchError(BaseAppException):
    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__("PROFILE_FETCH_FAILED", message, status.HTTP_502_BAD_GATEWAY)

class PublishError(BaseAppException):
    """Raised from the underlying cause; inspect ``__cause__`` for the trigger."""
    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__("PUBLISH_FAILED", message, status.HTTP_502_BAD_GATEWAY)
