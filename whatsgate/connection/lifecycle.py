"""
Connection Lifecycle Controller.

Each gateway request that needs the protocol (pairing, send) becomes one
attempt task that owns a transient protocol connection. The attempt consumes
``connection.update`` events from a per-connection queue, persists
``creds.update`` changes fire-and-forget, and resolves its RequestCorrelator
exactly once: success, terminal failure or timeout.

State machine::

    initializing -> awaiting_event -> paired | connected
                                    | closed_retryable | closed_terminal
                                    | timed_out
"""

from __future__ import annotations

import asyncio
import copy
import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from ..core.logging.logger import get_logger
from ..domain.errors import (
    ConnectionTerminalLogout,
    ConnectionTransientFailure,
    GatewayError,
    MediaDownloadFailure,
    MediaSendFailure,
    RequestTimeout,
    SessionNotFound,
)
from ..domain.interfaces.protocol_interface import (
    CONNECTION_UPDATE,
    CREDS_UPDATE,
    AuthState,
    ConnectionOptions,
    ConnectionUpdate,
    DisconnectReason,
    IProtocolClientFactory,
    IProtocolConnection,
    to_user_jid,
)
from ..domain.models.outcome import GatewayOutcome
from ..domain.models.session_models import TenantSession
from ..persistence.session_store import SessionStore
from .correlator import RequestCorrelator
from .key_store import SignalKeyStore
from .media import MediaDownloader


class LifecycleConfig(BaseModel):
    """Timings and limits for connection attempts."""

    request_timeout_seconds: float = Field(default=25, gt=0)
    connect_settle_seconds: float = Field(default=3, ge=0)
    retry_delay_seconds: float = Field(default=3, ge=0)
    max_connect_retries: int = Field(default=3, ge=0)
    pairing_window_seconds: float = Field(default=60, ge=0)
    browser: tuple[str, str, str] = ("Ubuntu", "Chrome", "20.0.04")

    @classmethod
    def from_settings(cls, settings: Any) -> LifecycleConfig:
        return cls(
            request_timeout_seconds=settings.request_timeout_seconds,
            connect_settle_seconds=settings.connect_settle_seconds,
            retry_delay_seconds=settings.retry_delay_seconds,
            max_connect_retries=settings.max_connect_retries,
            pairing_window_seconds=settings.pairing_window_seconds,
            browser=settings.browser,
        )


class LifecycleState(str, Enum):
    INITIALIZING = "initializing"
    AWAITING_EVENT = "awaiting_event"
    PAIRED = "paired"
    CONNECTED = "connected"
    CLOSED_RETRYABLE = "closed_retryable"
    CLOSED_TERMINAL = "closed_terminal"
    TIMED_OUT = "timed_out"


def _phone_digits(tenant_id: str) -> str:
    return re.sub(r"\D", "", tenant_id)


class ConnectionAttempt:
    """
    Base for one request-scoped connection attempt.

    Subclasses implement ``_execute``; ``run`` guarantees that whatever
    happens the correlator is resolved, the connection is closed and pending
    store writes are awaited.
    """

    flow = "attempt"
    mark_online = True

    def __init__(
        self,
        controller: ConnectionLifecycleController,
        tenant_id: str,
    ):
        self.controller = controller
        self.store = controller.store
        self.config = controller.config
        self.tenant_id = tenant_id
        self.correlator = RequestCorrelator(tenant_id)
        self.state = LifecycleState.INITIALIZING
        self.logger = get_logger(__name__).bind(tenant_id=tenant_id, action=self.flow)

        self.credentials: dict[str, Any] = {}
        self.keys = SignalKeyStore()

        self._connection: IProtocolConnection | None = None
        self._writes: set[asyncio.Task] = set()
        self._last_write: asyncio.Task | None = None
        self._discarded = False
        self._opened = False
        self._timed_out = False
        self._task: asyncio.Task | None = None

    # ---- entry point ------------------------------------------------------

    async def run(self) -> None:
        self._task = asyncio.current_task()
        loop = asyncio.get_running_loop()
        timer = loop.call_later(self.config.request_timeout_seconds, self._on_timeout)
        try:
            await self._execute()
        except asyncio.CancelledError:
            if not self._timed_out:
                raise
            self._task.uncancel()
        except GatewayError as e:
            self.logger.warning(f"{self.flow} failed: {e.error_code} - {e.message}")
            self._resolve(GatewayOutcome.from_exception(e, tenant_id=self.tenant_id))
        except Exception as e:
            self.logger.exception(f"Unexpected error during {self.flow}: {e}")
            self._resolve(
                GatewayOutcome.error(
                    "INTERNAL_ERROR",
                    f"Unexpected error: {e}",
                    tenant_id=self.tenant_id,
                )
            )
        finally:
            timer.cancel()
            await self._close_connection()
            if self._timed_out:
                self._resolve(
                    GatewayOutcome.from_exception(
                        RequestTimeout(
                            f"No response within {self.config.request_timeout_seconds:g} seconds",
                            tenant_id=self.tenant_id,
                        ),
                        tenant_id=self.tenant_id,
                    )
                )
            self._resolve(
                GatewayOutcome.error(
                    "INTERNAL_ERROR",
                    "Connection attempt ended without a result",
                    tenant_id=self.tenant_id,
                )
            )
            await self._drain_writes()
            self.logger.debug(f"{self.flow} finished in state '{self.state.value}'")

    async def _execute(self) -> None:
        raise NotImplementedError

    def _resolve(self, outcome: GatewayOutcome) -> bool:
        return self.correlator.resolve_once(outcome)

    def _on_timeout(self) -> None:
        if self.correlator.resolved:
            return
        if self.state is LifecycleState.CLOSED_TERMINAL:
            # logout cleanup is running and resolves the request itself
            self.logger.debug(f"{self.flow} timer fired during logout cleanup")
            return
        self.logger.warning(
            f"{self.flow} timed out after {self.config.request_timeout_seconds:g}s"
        )
        self._timed_out = True
        self.state = LifecycleState.TIMED_OUT
        if self._task is not None:
            self._task.cancel()

    # ---- connection plumbing ----------------------------------------------

    async def _open_connection(self) -> asyncio.Queue[ConnectionUpdate]:
        """Create a protocol connection over the current auth state and start it."""
        events: asyncio.Queue[ConnectionUpdate] = asyncio.Queue()
        connection = self.controller.protocol_factory.create(
            AuthState(credentials=self.credentials, keys=self.keys),
            ConnectionOptions(
                browser=self.config.browser, mark_online_on_connect=self.mark_online
            ),
        )
        connection.on(CONNECTION_UPDATE, events.put_nowait)
        connection.on(CREDS_UPDATE, self._on_creds_update)
        self._connection = connection

        try:
            await connection.connect()
        except Exception as e:
            raise ConnectionTransientFailure(
                f"Failed to start connection: {e}", tenant_id=self.tenant_id
            ) from e

        self.state = LifecycleState.AWAITING_EVENT
        return events

    async def _close_connection(self) -> None:
        connection, self._connection = self._connection, None
        if connection is None:
            return
        try:
            await connection.close()
        except Exception as e:
            self.logger.warning(f"Error closing connection: {e}")
        if self._opened:
            self._opened = False
            await self.store.clear_presence(self.tenant_id)

    async def _on_open(self, connection: IProtocolConnection) -> None:
        self._opened = True
        await self.store.mark_connected(self.tenant_id, connection.user)

    async def _on_close(self, update: ConnectionUpdate) -> None:
        """
        Classify a close event.

        Raises:
            ConnectionTerminalLogout: If the remote logged the device out
        """
        self._opened = False
        terminal = DisconnectReason.is_terminal(update.status_code)
        if terminal:
            self.state = LifecycleState.CLOSED_TERMINAL
        await self.store.clear_presence(self.tenant_id)

        if terminal:
            self.logger.warning("Remote signalled logout, deleting session")
            self._discarded = True
            await self._drain_writes()
            await self.store.delete(self.tenant_id)
            raise ConnectionTerminalLogout(
                "Session logged out, please pair again", tenant_id=self.tenant_id
            )

        self.state = LifecycleState.CLOSED_RETRYABLE
        self.logger.info(
            f"Connection closed (reason {update.status_code}): "
            f"{update.error or 'no error detail'}"
        )

    # ---- credential persistence -------------------------------------------

    def _on_creds_update(self, update: dict[str, Any] | None = None) -> None:
        if update:
            self.credentials.update(update)
        self._schedule_persist()

    def _snapshot(self) -> TenantSession:
        return TenantSession(
            tenant_id=self.tenant_id,
            credentials=copy.deepcopy(self.credentials),
            key_material=self.keys.snapshot(),
        )

    def _schedule_persist(self) -> asyncio.Task | None:
        """
        Queue a write of the current auth state.

        Writes run one after another in snapshot order, so the store stamps
        a later ``updated_at`` on every newer snapshot.
        """
        if self._discarded:
            return None
        task = asyncio.create_task(self._persist(self._snapshot(), self._last_write))
        self._last_write = task
        self._writes.add(task)
        task.add_done_callback(self._writes.discard)
        return task

    async def _persist(
        self, session: TenantSession, previous: asyncio.Task | None = None
    ) -> None:
        if previous is not None:
            await asyncio.wait({previous})
        if self._discarded:
            return
        await self.store.put(self.tenant_id, session)

    async def _drain_writes(self) -> None:
        if self._writes:
            await asyncio.gather(*list(self._writes), return_exceptions=True)


class PairingAttempt(ConnectionAttempt):
    """
    Pairing flow.

    Unregistered credentials get a pairing code after the settle delay; the
    code is the request's outcome, and the connection then stays up for the
    pairing window so the handshake can finish and persist. Registered
    credentials resolve as soon as the connection opens. Non-logout closes
    are retried after a fixed delay, up to ``max_connect_retries`` times.
    """

    flow = "pairing"

    def __init__(self, controller: ConnectionLifecycleController, tenant_id: str):
        super().__init__(controller, tenant_id)
        self.retries = 0
        self.pairing_code: str | None = None
        self._window_deadline: float | None = None

    async def _execute(self) -> None:
        session = await self.store.get(self.tenant_id)
        if session is not None:
            self.credentials = dict(session.credentials)
            self.keys = SignalKeyStore(session.key_material)
        else:
            self.credentials = self.controller.protocol_factory.init_credentials()

        loop = asyncio.get_running_loop()
        while True:
            try:
                events = await self._open_connection()
                retry = await self._drive(events)
            except ConnectionTransientFailure as e:
                self.state = LifecycleState.CLOSED_RETRYABLE
                self.logger.warning(e.message)
                retry = True

            if not retry:
                return

            await self._close_connection()
            if self.retries >= self.config.max_connect_retries:
                self.state = LifecycleState.CLOSED_TERMINAL
                raise ConnectionTransientFailure(
                    f"Connection failed after {self.retries + 1} attempts",
                    tenant_id=self.tenant_id,
                )
            self.retries += 1
            self.logger.info(
                f"Retrying in {self.config.retry_delay_seconds:g}s "
                f"({self.retries}/{self.config.max_connect_retries})"
            )
            await asyncio.sleep(self.config.retry_delay_seconds)

            if self._window_deadline is not None and loop.time() >= self._window_deadline:
                self.logger.info("Pairing window elapsed during retry, giving up")
                return

    async def _drive(self, events: asyncio.Queue[ConnectionUpdate]) -> bool:
        """
        Consume events from one connection.

        Returns:
            True if the connection closed with a retryable reason
        """
        if not self.credentials.get("registered") and self.pairing_code is None:
            await asyncio.sleep(self.config.connect_settle_seconds)
            await self._issue_pairing_code()

        loop = asyncio.get_running_loop()
        while True:
            timeout = None
            if self._window_deadline is not None:
                timeout = max(self._window_deadline - loop.time(), 0)
            try:
                update = await asyncio.wait_for(events.get(), timeout)
            except TimeoutError:
                self.logger.info("Pairing window elapsed without completion")
                return False

            if update.connection == "open":
                await self._on_open(self._connection)
                already = self.pairing_code is None
                self.state = (
                    LifecycleState.CONNECTED if already else LifecycleState.PAIRED
                )
                write = self._schedule_persist()
                if write is not None:
                    await asyncio.wait({write})
                self._resolve(
                    GatewayOutcome.ok(
                        "Already connected" if already else "Pairing completed",
                        tenant_id=self.tenant_id,
                        user=self._connection.user,
                    )
                )
                return False

            if update.connection == "close":
                await self._on_close(update)
                return True

    async def _issue_pairing_code(self) -> None:
        try:
            code = await self._connection.request_pairing_code(
                _phone_digits(self.tenant_id)
            )
        except Exception as e:
            raise ConnectionTransientFailure(
                f"Pairing code request failed: {e}", tenant_id=self.tenant_id
            ) from e

        self.pairing_code = code
        self.state = LifecycleState.PAIRED
        self._window_deadline = (
            asyncio.get_running_loop().time() + self.config.pairing_window_seconds
        )
        self.logger.info("Pairing code issued")
        self._schedule_persist()
        self._resolve(
            GatewayOutcome.ok(
                "Pairing code generated",
                tenant_id=self.tenant_id,
                pairing_code=code,
            )
        )


class SendAttempt(ConnectionAttempt):
    """
    One-shot send flow over a registered session.

    Any close before the message goes out fails the request; a logout also
    deletes the session. Image problems fall back to a text-only send.
    """

    flow = "send"
    mark_online = False

    def __init__(
        self,
        controller: ConnectionLifecycleController,
        tenant_id: str,
        recipient: str,
        text: str | None,
        image_url: str | None = None,
    ):
        super().__init__(controller, tenant_id)
        self.recipient = recipient
        self.text = text or ""
        self.image_url = image_url

    async def _execute(self) -> None:
        jid = to_user_jid(self.recipient)

        session = await self.store.get(self.tenant_id)
        if session is None or not session.is_registered:
            raise SessionNotFound(
                "Session not found, please pair first", tenant_id=self.tenant_id
            )
        self.credentials = dict(session.credentials)
        self.keys = SignalKeyStore(session.key_material)

        events = await self._open_connection()
        while True:
            update = await events.get()

            if update.connection == "open":
                await self._on_open(self._connection)
                await asyncio.sleep(self.config.connect_settle_seconds)
                outcome = await self._deliver(jid)
                self.state = LifecycleState.CONNECTED
                self._resolve(outcome)
                return

            if update.connection == "close":
                await self._on_close(update)
                raise ConnectionTransientFailure(
                    "Connection interrupted before the message was sent",
                    tenant_id=self.tenant_id,
                    reason_code=update.status_code,
                )

    async def _deliver(self, jid: str) -> GatewayOutcome:
        connection = self._connection
        media_error: str | None = None

        if self.image_url:
            try:
                data = await self.controller.downloader.download(
                    self.image_url, tenant_id=self.tenant_id
                )
                try:
                    message_id = await connection.send_image(
                        jid, data, caption=self.text or None
                    )
                except Exception as e:
                    raise MediaSendFailure(
                        f"Image send failed: {e}", tenant_id=self.tenant_id
                    ) from e
                return GatewayOutcome.ok(
                    "Message sent successfully",
                    tenant_id=self.tenant_id,
                    recipient=self.recipient,
                    message_id=message_id,
                    media_sent=True,
                )
            except (MediaDownloadFailure, MediaSendFailure) as e:
                self.logger.warning(f"{e.message}; falling back to text")
                media_error = e.message

        try:
            message_id = await connection.send_text(jid, self.text or self.image_url or "")
        except Exception as e:
            raise ConnectionTransientFailure(
                f"Message send failed: {e}", tenant_id=self.tenant_id
            ) from e

        if media_error:
            return GatewayOutcome.ok(
                "Message sent without image",
                tenant_id=self.tenant_id,
                recipient=self.recipient,
                message_id=message_id,
                media_sent=False,
                media_error=media_error,
            )
        return GatewayOutcome.ok(
            "Message sent successfully",
            tenant_id=self.tenant_id,
            recipient=self.recipient,
            message_id=message_id,
        )


class ConnectionLifecycleController:
    """
    Spawns and tracks connection attempts.

    Args:
        store: Session store shared by all attempts
        protocol_factory: Builds protocol connections
        config: Timings and limits
        downloader: Remote image fetcher for the send flow
    """

    def __init__(
        self,
        store: SessionStore,
        protocol_factory: IProtocolClientFactory,
        config: LifecycleConfig | None = None,
        downloader: MediaDownloader | None = None,
    ):
        self.store = store
        self.protocol_factory = protocol_factory
        self.config = config or LifecycleConfig()
        self.downloader = downloader or MediaDownloader()
        self._attempts: set[asyncio.Task] = set()
        self.logger = get_logger(__name__)

    @property
    def in_flight(self) -> int:
        return len(self._attempts)

    async def request_pairing_code(self, tenant_id: str) -> GatewayOutcome:
        """Run the pairing flow for a tenant and return its first outcome."""
        return await self._start(PairingAttempt(self, tenant_id))

    async def send_message(
        self,
        tenant_id: str,
        recipient: str,
        text: str | None,
        image_url: str | None = None,
    ) -> GatewayOutcome:
        """Send a text or image+caption message from a tenant's session."""
        return await self._start(
            SendAttempt(self, tenant_id, recipient, text, image_url)
        )

    async def _start(self, attempt: ConnectionAttempt) -> GatewayOutcome:
        task = asyncio.create_task(
            attempt.run(), name=f"whatsgate:{attempt.flow}:{attempt.tenant_id}"
        )
        self._attempts.add(task)
        task.add_done_callback(self._attempts.discard)
        return await attempt.correlator.wait()

    async def aclose(self) -> None:
        """Cancel every attempt still running (pairing windows included)."""
        tasks = list(self._attempts)
        if not tasks:
            return
        self.logger.info(f"Cancelling {len(tasks)} in-flight connection attempts")
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

