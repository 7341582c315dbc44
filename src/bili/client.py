"""Bilibili passport and account API clients."""

import logging
from typing import Any

import httpx

from bili.cookies import parse_cookie_string
from bili.exceptions import TransportError
from bili.models import NETWORK_ERROR_CODE, BiliUser, Envelope, PollResult, QRSession
from bili.transport import PassportTransport

logger = logging.getLogger(__name__)

GENERATE_QR_PATH = "/x/passport-login/web/qrcode/generate"
POLL_QR_PATH = "/x/passport-login/web/qrcode/poll"
NAV_ENDPOINT = "https://api.bilibili.com/x/web-interface/nav"

USER_AGENT = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36"
REFERER = "https://www.bilibili.com"


def _client_headers() -> dict[str, str]:
    return {
        "User-Agent": USER_AGENT,
        "Referer": REFERER,
    }


def _parse_envelope(body: Any) -> Envelope:
    if not isinstance(body, dict) or not isinstance(body.get("code"), int):
        logger.warning("Unexpected response body: %.100r", body)
        return Envelope(code=NETWORK_ERROR_CODE, message="Invalid response")

    data = body.get("data")
    return Envelope(
        code=body["code"],
        message=str(body.get("message", "")),
        data=data if isinstance(data, dict) else None,
    )


class PassportClient:
    """Issues the QR generate and poll calls.

    Neither call raises: transport failures come back as a ``code -1`` envelope
    and nothing is retried here.
    """

    def __init__(self, transport: PassportTransport) -> None:
        self._transport = transport

    async def _fetch_envelope(self, path: str, params: dict[str, str] | None = None) -> Envelope:
        try:
            body = await self._transport.get_json(path, params=params, headers=_client_headers())
        except TransportError as e:
            logger.warning("Passport request failed: %s", e.message)
            return Envelope(code=NETWORK_ERROR_CODE, message="Network error")

        return _parse_envelope(body)

    async def generate_qr(self) -> QRSession | None:
        """Request a new login QR code. Returns None on any failure."""
        envelope = await self._fetch_envelope(GENERATE_QR_PATH)

        if not envelope.ok:
            logger.error("Failed to get QR code: %s", envelope.message)
            return None

        data = envelope.data or {}
        url = data.get("url")
        key = data.get("qrcode_key")
        if not isinstance(url, str) or not isinstance(key, str) or not url or not key:
            logger.error("QR code response is missing the login URL or key")
            return None

        return QRSession(login_url=url, session_key=key)

    async def poll_qr(self, session_key: str) -> PollResult:
        """Ask the provider how far a QR login has progressed."""
        envelope = await self._fetch_envelope(POLL_QR_PATH, params={"qrcode_key": session_key})

        if not envelope.ok:
            return PollResult(code=envelope.code, message=envelope.message)

        data = envelope.data or {}
        status = data.get("code")
        if not isinstance(status, int):
            logger.warning("Poll response carried no inner status")
            return PollResult(code=envelope.code, message=envelope.message)

        url = data.get("url")
        return PollResult(
            code=envelope.code,
            message=str(data.get("message") or envelope.message),
            status=status,
            url=url if isinstance(url, str) and url else None,
        )

    async def aclose(self) -> None:
        await self._transport.aclose()


class BiliClient:
    """Client for account queries made with a logged-in session."""

    def __init__(self, client: httpx.AsyncClient | None = None, timeout: float = 10.0) -> None:
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def _build_headers(self, cookies: str) -> dict[str, str]:
        return {
            **_client_headers(),
            "Cookie": cookies,
        }

    async def get_current_user(self, cookies: str) -> BiliUser | None:
        """Return the logged-in user for a cookie string, or None."""
        if "SESSDATA" not in parse_cookie_string(cookies):
            logger.debug("Credential has no SESSDATA; skipping current-user query")
            return None

        try:
            response = await self._client.get(NAV_ENDPOINT, headers=self._build_headers(cookies))
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Current-user query failed: %s", e)
            return None

        envelope = _parse_envelope(body)
        data = envelope.data or {}
        if not envelope.ok or not data.get("isLogin"):
            logger.info("Stored session is not logged in (code %s)", envelope.code)
            return None

        try:
            mid = int(data["mid"])
        except (KeyError, TypeError, ValueError):
            logger.warning("Current-user response has no usable mid")
            return None

        return BiliUser(
            mid=mid,
            uname=str(data.get("uname", "")),
            face=data.get("face"),
            vip=data.get("vipStatus") == 1,
        )

    async def aclose(self) -> None:
        await self._client.aclose()
