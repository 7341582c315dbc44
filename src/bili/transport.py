"""Transports that carry passport requests in each host runtime."""

import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx

from bili.exceptions import TransportError
from bili.models import Config, Runtime

logger = logging.getLogger(__name__)

AUTH_BASE = "https://passport.bilibili.com"
DEFAULT_TIMEOUT_SECONDS = 10.0

# Headers a browser won't let a page set on a cross-origin fetch
FORBIDDEN_BROWSER_HEADERS = frozenset({"user-agent", "referer"})


class PassportTransport(ABC):
    """Sends a GET to a passport path and returns the decoded JSON body."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @abstractmethod
    def build_url(self, path: str) -> str:
        """Return the absolute URL a passport path is fetched from."""

    def build_headers(self, headers: dict[str, str]) -> dict[str, str]:
        return dict(headers)

    async def get_json(
        self,
        path: str,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        url = self.build_url(path)
        try:
            response = await self._client.get(
                url, params=params, headers=self.build_headers(headers or {})
            )
            response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise TransportError(f"Request to {path} failed: {e}") from e
        except Exception as e:
            # Socket setup errors (e.g. an out-of-range port) surface from below httpx
            logger.debug("Unexpected error requesting %s", url, exc_info=True)
            raise TransportError(f"Request to {path} failed: {e!r}") from e

        try:
            return response.json()
        except ValueError as e:
            raise TransportError(f"Response from {path} is not JSON") from e

    async def aclose(self) -> None:
        await self._client.aclose()


class PrivilegedTransport(PassportTransport):
    """Desktop transport: talks to the provider directly with any headers."""

    def build_url(self, path: str) -> str:
        return f"{AUTH_BASE}{path}"


class ProxiedTransport(PassportTransport):
    """Browser transport: routes through a same-origin proxy when one is set.

    Headers a browser refuses to send are dropped; the proxy is expected to add
    the client identity on the way out.
    """

    def __init__(
        self,
        proxy_base: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        super().__init__(client=client, timeout=timeout)
        self.proxy_base = proxy_base.rstrip("/") if proxy_base else None

    def build_url(self, path: str) -> str:
        if self.proxy_base:
            return f"{self.proxy_base}{path}"
        return f"{AUTH_BASE}{path}"

    def build_headers(self, headers: dict[str, str]) -> dict[str, str]:
        allowed = {
            name: value
            for name, value in headers.items()
            if name.lower() not in FORBIDDEN_BROWSER_HEADERS
        }
        if not any(name.lower() == "accept" for name in allowed):
            allowed["Accept"] = "application/json"
        return allowed


def select_transport(config: Config, client: httpx.AsyncClient | None = None) -> PassportTransport:
    """Pick the transport for the configured runtime."""
    if config.runtime == Runtime.DESKTOP:
        logger.debug("Using privileged passport transport")
        return PrivilegedTransport(client=client, timeout=config.timeout)

    logger.debug("Using proxied passport transport (proxy base: %s)", config.proxy_base or "none")
    return ProxiedTransport(config.proxy_base, client=client, timeout=config.timeout)
