"""
GSSMediator Exception Types

Custom exceptions for provider installation, capability mediation,
credential cache emulation and token framing.
"""

from typing import Optional


class GSSMediatorError(Exception):
    """Base exception for all GSSMediator errors."""

    # Major status codes per RFC 2744 section 3.9.1
    GSS_S_DEFECTIVE_TOKEN = 9
    GSS_S_DEFECTIVE_CREDENTIAL = 10
    GSS_S_FAILURE = 13
    GSS_S_UNAVAILABLE = 16

    def __init__(self, message: str, code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class InstallationFailure(GSSMediatorError):
    """
    Provider installation failed.

    Installation failures are latched: once raised, every later attempt
    to install re-raises this same instance without retrying.
    """

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message, code=self.GSS_S_FAILURE)
        self.cause = cause


class DefectiveCredential(GSSMediatorError):
    """A credential is neither an initiator nor an acceptor credential."""

    def __init__(
        self,
        message: str = "Provided credential is neither an initiator nor an acceptor",
    ) -> None:
        super().__init__(message, code=self.GSS_S_DEFECTIVE_CREDENTIAL)


class DefectiveToken(GSSMediatorError):
    """
    Malformed framed token.

    The token header is not a valid RFC 2743 initial context token
    header, or the declared length does not match the data.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message, code=self.GSS_S_DEFECTIVE_TOKEN)


class UnavailableOperation(GSSMediatorError):
    """
    Operation not supported.

    Raised for token reads from streams of unknown length and for
    optional context inquiries this provider does not implement.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message, code=self.GSS_S_UNAVAILABLE)


class EndOfStream(GSSMediatorError, EOFError):
    """The source ended before the declared number of bytes was read."""

    def __init__(self, message: str = "Premature end of stream") -> None:
        super().__init__(message, code=self.GSS_S_DEFECTIVE_TOKEN)


class CacheCreationFailure(GSSMediatorError):
    """
    Decoy credential cache could not be created.

    Always carries the target path and a human-readable reason.
    """

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(
            f"Cannot create credentials cache file at {path}, {reason}",
            code=self.GSS_S_FAILURE,
        )
        self.path = path
        self.reason = reason


class TimestampOverflow(GSSMediatorError, ValueError):
    """
    Time value does not fit the credential cache time representation.

    Cache times are unsigned 32-bit seconds since the epoch, so the
    last representable instant is 2106-02-07T06:28:15Z.
    """

    pass


class StateError(GSSMediatorError):
    """
    Invalid state transition.

    This indicates an attempt to perform an operation that is
    not valid in the current install state.
    """

    pass
