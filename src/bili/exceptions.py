"""Custom exceptions for the bili-cli application."""


class BiliError(Exception):
    """Base exception for all bili-cli errors."""

    def __init__(self, message: str = "An error occurred with Bili CLI") -> None:
        self.message = message
        super().__init__(self.message)


class TransportError(BiliError):
    """Raised when a passport request can't be completed or decoded."""

    def __init__(self, message: str = "Network error") -> None:
        super().__init__(message)


class CredentialStoreError(BiliError):
    """Raised when the credential record can't be read or written."""

    def __init__(self, message: str = "Failed to access the credential store") -> None:
        super().__init__(message)


class NotLoggedInError(BiliError):
    """Raised when an operation needs a credential and none is active."""

    def __init__(self, message: str = "Not logged in. Run 'bili login' and scan the QR code.") -> None:
        super().__init__(message)
