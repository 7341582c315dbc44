"""Data models for the Bili CLI."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


# Inner status codes carried by a successful poll envelope
QR_SUCCESS = 0
QR_EXPIRED = 86038
QR_SCANNED = 86090
QR_NOT_SCANNED = 86101

NETWORK_ERROR_CODE = -1


class Runtime(str, Enum):
    """Host the client runs in."""

    DESKTOP = "desktop"
    BROWSER = "browser"


class SessionStatus(str, Enum):
    """States of a QR login attempt."""

    IDLE = "idle"
    GENERATING = "generating"
    AWAITING_SCAN = "awaiting_scan"
    SCANNED = "scanned"
    SUCCEEDED = "succeeded"
    EXPIRED = "expired"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.SUCCEEDED, SessionStatus.EXPIRED, SessionStatus.FAILED)


@dataclass
class Envelope:
    """Outer response shape of every passport call."""

    code: int
    message: str
    data: Optional[dict[str, Any]] = None

    @property
    def ok(self) -> bool:
        return self.code == 0


@dataclass
class QRSession:
    """An in-flight login attempt."""

    login_url: str
    session_key: str
    status: SessionStatus = SessionStatus.AWAITING_SCAN


@dataclass
class PollResult:
    """Result of one poll call.

    ``code`` is the envelope code. ``status`` and ``url`` are only set when the
    envelope succeeded; ``url`` only for the resolved case.
    """

    code: int
    message: str
    status: Optional[int] = None
    url: Optional[str] = None


@dataclass(frozen=True)
class Credential:
    """Session cookies persisted after a successful login."""

    cookies: str

    def to_record(self) -> dict[str, str]:
        return {"cookies": self.cookies}


@dataclass
class BiliUser:
    """Profile returned by the current-user query."""

    mid: int
    uname: str
    face: Optional[str] = None
    vip: bool = False


@dataclass
class AuthEvent:
    """Published on every status change and on logout."""

    status: SessionStatus
    message: str
    credential: Optional[Credential] = None
    logged_out: bool = False


@dataclass
class Config:
    """User configuration for the CLI."""

    runtime: Runtime
    proxy_base: Optional[str]
    poll_interval: float = 2.0
    timeout: float = 10.0
