"""Shared pytest fixtures for the bili-cli test suite."""

from typing import Callable
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from bili.client import PassportClient
from bili.credentials import CredentialStore
from bili.models import Config, QRSession, Runtime
from bili.poller import AuthPoller
from bili.session import SessionManager
from bili.storage import Storage


LOGIN_URL = "https://passport.bilibili.com/h5-app/passport/login/scan?navhide=1&qrcode_key=K1"
SUCCESS_URL = (
    "https://passport.biligame.com/x/passport-login/web/crossDomain"
    "?DedeUserID=12345&DedeUserID__ckMd5=abcdef&Expires=1700000000"
    "&SESSDATA=zzz&bili_jct=yyy&gourl=https%3A%2F%2Fwww.bilibili.com"
)


@pytest.fixture
def make_http_client() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    """Returns a factory for AsyncClients answered by a handler function."""

    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return factory


@pytest.fixture
def login_url() -> str:
    return LOGIN_URL


@pytest.fixture
def success_url() -> str:
    return SUCCESS_URL


@pytest.fixture
def desktop_config() -> Config:
    """Returns a desktop Config with no poll delay."""
    return Config(runtime=Runtime.DESKTOP, proxy_base=None, poll_interval=0, timeout=5.0)


@pytest.fixture
def browser_config() -> Config:
    """Returns a browser Config routed through a local proxy."""
    return Config(
        runtime=Runtime.BROWSER,
        proxy_base="http://localhost:5173/api/passport/",
        poll_interval=0,
        timeout=5.0,
    )


@pytest.fixture
def tmp_storage(tmp_path) -> Storage:
    """Returns a Storage instance using a temporary directory."""
    return Storage(base_path=tmp_path)


@pytest.fixture
def qr_session() -> QRSession:
    """Returns a freshly generated QR session."""
    return QRSession(login_url=LOGIN_URL, session_key="K1")


@pytest.fixture
def mock_passport_client(qr_session) -> MagicMock:
    """Returns a PassportClient mock that hands out qr_session."""
    mock = MagicMock(spec=PassportClient)
    mock.generate_qr.return_value = qr_session
    return mock


@pytest.fixture
def mock_store() -> MagicMock:
    """Returns a CredentialStore mock holding nothing."""
    mock = MagicMock(spec=CredentialStore)
    mock.get.return_value = None
    return mock


@pytest.fixture
def mock_user_resolver() -> MagicMock:
    """Returns an async current-user resolver mock that finds nobody."""
    return AsyncMock(return_value=None)


@pytest.fixture
def manager(mock_passport_client, mock_store, mock_user_resolver) -> SessionManager:
    """Returns a SessionManager wired to mocks with a zero poll interval."""
    return SessionManager(
        mock_passport_client,
        mock_store,
        poller=AuthPoller(interval=0),
        user_resolver=mock_user_resolver,
    )
