"""Session manager for the QR login flow and the persisted credential."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, MutableMapping

import httpx

from bili.client import BiliClient, PassportClient
from bili.cookies import extract_cookies_from_url
from bili.credentials import CredentialStore, create_credential_store
from bili.exceptions import CredentialStoreError
from bili.models import (
    QR_EXPIRED,
    QR_NOT_SCANNED,
    QR_SCANNED,
    QR_SUCCESS,
    AuthEvent,
    BiliUser,
    Config,
    Credential,
    QRSession,
    SessionStatus,
)
from bili.poller import AuthPoller
from bili.storage import Storage
from bili.transport import select_transport

logger = logging.getLogger(__name__)

GENERATE_FAILED_MESSAGE = "Failed to generate QR code"

STATUS_MESSAGES = {
    SessionStatus.IDLE: "Login cancelled",
    SessionStatus.GENERATING: "Generating QR code...",
    SessionStatus.AWAITING_SCAN: "Scan with Bilibili app",
    SessionStatus.SCANNED: "Scanned - please confirm on your phone",
    SessionStatus.SUCCEEDED: "Login successful",
    SessionStatus.EXPIRED: "QR code expired",
    SessionStatus.FAILED: "Login failed",
}

UserResolver = Callable[[str], Awaitable[BiliUser | None]]
AuthListener = Callable[[AuthEvent], Any]


class SessionManager:
    """Drives a QR login from generation to outcome and owns the credential.

    One instance per process. Starting a new login cancels the previous one;
    the poller is only ever running for the current QR session.
    """

    def __init__(
        self,
        client: PassportClient,
        store: CredentialStore,
        poller: AuthPoller | None = None,
        user_resolver: UserResolver | None = None,
    ) -> None:
        self._client = client
        self._store = store
        self._poller = poller or AuthPoller()
        self._bili_client: BiliClient | None = None
        if user_resolver is None:
            self._bili_client = BiliClient()
            user_resolver = self._bili_client.get_current_user
        self._user_resolver = user_resolver

        self._status = SessionStatus.IDLE
        self._session: QRSession | None = None
        self._credential: Credential | None = None
        self._error: str | None = None
        self._attempt = 0
        self._resolution: asyncio.Event | None = None
        self._listeners: list[AuthListener] = []

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def session(self) -> QRSession | None:
        return self._session

    @property
    def credential(self) -> Credential | None:
        return self._credential

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def polling(self) -> bool:
        return self._poller.running

    def subscribe(self, listener: AuthListener) -> Callable[[], None]:
        """Register a listener for auth events. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: AuthEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Auth listener failed on %s", event.status.value)

    def _transition(
        self,
        status: SessionStatus,
        message: str | None = None,
        credential: Credential | None = None,
    ) -> None:
        message = message or STATUS_MESSAGES[status]
        logger.debug("Login status %s -> %s", self._status.value, status.value)
        self._status = status
        if self._session is not None:
            self._session.status = status
        if status == SessionStatus.FAILED:
            self._error = message
        self._emit(AuthEvent(status=status, message=message, credential=credential))

    def _finish(
        self,
        status: SessionStatus,
        message: str | None = None,
        credential: Credential | None = None,
    ) -> None:
        self._poller.cancel()
        self._transition(status, message, credential)
        self._session = None

    async def start_login(self) -> QRSession | None:
        """Request a QR code and start polling it.

        Returns the new session, or None when generation failed or the attempt
        was cancelled while the request was in flight.
        """
        await self._settle()
        self.cancel()
        self._attempt += 1
        attempt = self._attempt
        self._error = None
        self._transition(SessionStatus.GENERATING)

        session = await self._client.generate_qr()

        if attempt != self._attempt:
            logger.debug("Discarding QR code for a cancelled login attempt")
            return None

        if session is None:
            self._finish(SessionStatus.FAILED, GENERATE_FAILED_MESSAGE)
            return None

        self._session = session
        self._transition(SessionStatus.AWAITING_SCAN)
        self._poller.start(self.poll_once)
        logger.info("Waiting for QR code scan")
        return session

    async def poll_once(self) -> bool:
        """Poll the current session once. Returns True while polling should go on."""
        session = self._session
        if session is None:
            return False

        result = await self._client.poll_qr(session.session_key)

        if self._session is not session:
            logger.debug("Discarding poll result for a cancelled session")
            return False

        if result.code != 0:
            logger.warning("QR poll failed (code %s): %s", result.code, result.message)
            self._finish(SessionStatus.FAILED, result.message or None)
            return False

        if result.status == QR_SUCCESS:
            await self._complete_login(result.url)
            return False

        if result.status == QR_EXPIRED:
            self._finish(SessionStatus.EXPIRED)
            return False

        if result.status == QR_SCANNED:
            if self._status != SessionStatus.SCANNED:
                self._transition(SessionStatus.SCANNED)
            return True

        if result.status == QR_NOT_SCANNED:
            if self._status != SessionStatus.AWAITING_SCAN:
                self._transition(SessionStatus.AWAITING_SCAN)
            return True

        logger.info("Unknown QR status %s: %s", result.status, result.message)
        return True

    async def _complete_login(self, url: str | None) -> None:
        cookies = extract_cookies_from_url(url)
        if not cookies:
            logger.warning("Login succeeded but no session cookies were found")
            self._finish(SessionStatus.SUCCEEDED)
            return

        credential = Credential(cookies=cookies)
        # The provider has accepted the login; cancel() is ignored until it resolves
        resolution = self._resolution = asyncio.Event()
        try:
            try:
                await self._store.set(credential)
            except CredentialStoreError as e:
                logger.error("Could not persist credential: %s", e.message)

            self._credential = credential
            logger.info("Login successful")
            self._finish(SessionStatus.SUCCEEDED, credential=credential)
        finally:
            self._resolution = None
            resolution.set()

    async def _settle(self) -> None:
        """Wait for an accepted login to finish resolving."""
        resolution = self._resolution
        if resolution is not None:
            await resolution.wait()

    def cancel(self) -> None:
        """Abandon the login in progress, if any. Nothing is persisted.

        Once the provider has accepted the login and the credential is being
        stored, the login can no longer be cancelled and this is a no-op.
        """
        if self._resolution is not None:
            logger.debug("Login already accepted; ignoring cancel")
            return
        self._poller.cancel()
        self._attempt += 1
        in_progress = self._status in (
            SessionStatus.GENERATING,
            SessionStatus.AWAITING_SCAN,
            SessionStatus.SCANNED,
        )
        if in_progress:
            self._transition(SessionStatus.IDLE)
        self._session = None

    async def wait(self) -> None:
        """Wait for the running poll loop to end."""
        await self._poller.wait()

    async def logout(self) -> None:
        """Forget the credential in memory and in the store."""
        await self._settle()
        self.cancel()
        self._credential = None
        try:
            await self._store.delete()
        except CredentialStoreError as e:
            logger.error("Could not delete stored credential: %s", e.message)

        self._status = SessionStatus.IDLE
        self._emit(AuthEvent(status=SessionStatus.IDLE, message="Logged out", logged_out=True))

    async def check_login_status(self) -> BiliUser | None:
        """Return the logged-in user, loading a stored credential if needed."""
        if self._credential is None:
            try:
                self._credential = await self._store.get()
            except CredentialStoreError as e:
                logger.error("Could not load stored credential: %s", e.message)

        if self._credential is None:
            return None

        return await self._user_resolver(self._credential.cookies)

    async def aclose(self) -> None:
        await self._settle()
        self.cancel()
        await self._client.aclose()
        if self._bili_client is not None:
            await self._bili_client.aclose()


def create_session_manager(
    config: Config | None = None,
    storage: Storage | None = None,
    legacy: MutableMapping[str, Any] | None = None,
    http_client: httpx.AsyncClient | None = None,
    user_resolver: UserResolver | None = None,
) -> SessionManager:
    """Build the manager, choosing transport and store for the runtime once."""
    storage = storage or Storage()
    config = config or storage.get_config()

    transport = select_transport(config, client=http_client)
    store = create_credential_store(config.runtime, storage, legacy)
    logger.debug("Session manager for %s runtime", config.runtime.value)

    return SessionManager(
        PassportClient(transport),
        store,
        poller=AuthPoller(config.poll_interval),
        user_resolver=user_resolver,
    )
