from typing import Optional, Union


class PanError(RuntimeError):
    """Base class for every error raised by the client."""


class ApiError(PanError):
    def __init__(self, code: Optional[int], message: str) -> None:
        super().__init__(f"API error: code={code} msg={message}")
        self.code = code
        self.message = message


class AuthError(PanError):
    """Bad credentials or backend unreachable while logging in."""


class NotAuthenticatedError(PanError):
    pass


class ListingError(PanError):
    pass


class TransferStartError(PanError):
    """The backend refused a request before any progress was made."""


class TransferRuntimeError(PanError):
    def __init__(self, key: Union[int, str], message: str) -> None:
        super().__init__(message)
        self.key = key
