"""
Exceptions raised by the FHEMWEB client
"""

import enum


class ErrorKind(enum.StrEnum):
    """Machine-readable failure classification."""

    INVALID_URL = "invalid-configuration-url"
    RESPONSE_ERROR = "response-error"
    RESPONSE_ABORTED = "response-aborted"
    CONNECT_TIMEOUT = "connect-timeout"
    CONNECTION_REFUSED = "connection-refused"
    NETWORK_UNREACHABLE = "network-unreachable"
    CONNECTION_RESET = "connection-reset"
    REQUEST_ERROR = "other-request-error"
    AUTH_FAILED = "auth-failed"
    WRONG_BASE_PATH = "wrong-base-path"
    TOKEN_ABSENT = "token-required-but-absent"
    UNEXPECTED_STATUS = "unexpected-status"
    REMOTE_INVOCATION_FAILED = "remote-invocation-failed"
    ODD_LENGTH_LIST = "odd-length-list-for-mapping"


class FhemException(Exception):
    """Base class for every error the client raises."""

    retryable = False

    def __init__(self, message: str, kind: ErrorKind) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind

    def __str__(self) -> str:
        return f"[{self.kind}] {self.message}"


class FhemConfigurationError(FhemException):
    """The client or the FHEMWEB instance is set up in a way that cannot work."""


class FhemCredentialsException(FhemException):
    """FHEMWEB rejected username or password."""

    def __init__(self, message: str) -> None:
        super().__init__(message, ErrorKind.AUTH_FAILED)


class FhemTransportError(FhemException):
    """Connection or response level failure."""

    retryable = True

    def __init__(self, message: str, kind: ErrorKind, status_code: int | None = None) -> None:
        super().__init__(message, kind)
        self.status_code = status_code


class FhemRemoteError(FhemException):
    """FHEM answered, but not with something a function result can be built from."""
