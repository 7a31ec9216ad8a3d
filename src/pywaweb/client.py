from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Protocol

from .bridge import EventBridge
from .browser_config import BrowserConfig
from .constants import (
    DEFAULT_MAX_TRACKED_IDS,
    DEFAULT_PENDING_TYPES,
    EVENT_AUTH_FAILURE,
    EVENT_AUTHENTICATED,
    EVENT_DISCONNECTED,
    EVENT_MESSAGE,
    EVENT_MESSAGE_CREATE,
    EVENT_MESSAGE_REMOVED,
    EVENT_MESSAGE_TYPE_RESOLVED,
    EVENT_READY,
)
from .exceptions import AuthenticationError, NotReadyError, PywawebError, ReadyTimeoutError
from .page import BrowserSession, PageRemoteStore
from .records import (
    Authenticated,
    ChatInfo,
    ClientInfo,
    ContactInfo,
    DomainEvent,
    InboundRecord,
    MessageAdded,
    MessageRemoved,
    MessageTypeResolved,
    StateReady,
)
from .remote import MessageSender, RemoteStore, SessionStore, Unsubscribe
from .util.asyncio import cancel_suppress, ensure_task, promise_timeout
from .util.events import AsyncEventEmitter, Listener

logger = logging.getLogger(__name__)


class ClientStore(RemoteStore, SessionStore, MessageSender, Protocol):
    pass


@dataclass(slots=True)
class ClientConfig:
    browser: BrowserConfig = field(default_factory=BrowserConfig)
    # None waits forever.
    ready_timeout_s: float | None = 120.0
    pending_types: frozenset[str] = DEFAULT_PENDING_TYPES
    max_tracked_ids: int = DEFAULT_MAX_TRACKED_IDS


class WebClient:
    """
    High-level async client facade.

    Runs an `EventBridge` over a remote store and fans its events out to
    listeners registered with `on()`:

    - "authenticated"          (info)    the account logged in to the page
    - "auth_failure"           (reason)  no account logged in; `connect()` raises
    - "ready"                  ()
    - "message_create"         (record)  every new message, own ones included
    - "message"                (record)  new messages not sent by this account
    - "message_type_resolved"  (record, previous_type)
    - "message_removed"        (record)
    - "disconnected"           (reason)

    Without an injected `store`, a Playwright browser is launched on `connect()`
    and the page itself becomes the store.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        store: ClientStore | None = None,
        session: BrowserSession | None = None,
    ) -> None:
        self.config = config or ClientConfig()
        self.events = AsyncEventEmitter()
        if session is None and store is None:
            session = BrowserSession(self.config.browser)
        self.session = session
        self._store = store
        self._bridge: EventBridge | None = None

        self._queue: asyncio.Queue[DomainEvent] = asyncio.Queue()
        self._dispatch_task: asyncio.Task[None] | None = None
        self._lost_task: asyncio.Task[None] | None = None
        self._connect_lock = asyncio.Lock()
        self._connected = False
        self._ready = False
        self._session_hooked = False
        self._authenticated = False
        self._auth_unsubscribe: Unsubscribe | None = None

    @classmethod
    def with_profile(cls, folder: str, *, headless: bool = True) -> WebClient:
        """Client whose browser keeps its WhatsApp Web login in `folder`."""

        browser = BrowserConfig(user_data_dir=folder, headless=headless)
        return cls(ClientConfig(browser=browser))

    @property
    def store(self) -> ClientStore:
        if self._store is None:
            raise NotReadyError("client not connected")
        return self._store

    @property
    def bridge(self) -> EventBridge | None:
        return self._bridge

    @property
    def info(self) -> ClientInfo | None:
        """The logged-in account, once known."""
        return self._store.info if self._store is not None else None

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def is_ready(self) -> bool:
        return self._ready

    def on(self, event: str, listener: Listener) -> None:
        self.events.on(event, listener)

    def once(self, event: str, listener: Listener) -> None:
        self.events.once(event, listener)

    def off(self, event: str, listener: Listener) -> None:
        self.events.off(event, listener)

    async def connect(self) -> None:
        async with self._connect_lock:
            if self._connected:
                return
            try:
                await self._open()
            except AuthenticationError as e:
                logger.warning("authentication failed: %s", e.reason)
                await self._teardown(None)
                await self.events.emit(EVENT_AUTH_FAILURE, e.reason)
                raise
            except PywawebError:
                await self._teardown(None)
                raise
            self._connected = True
            logger.info("client connected")

    async def _open(self) -> None:
        if self._store is None:
            assert self.session is not None
            page = await self.session.launch()
            self._store = PageRemoteStore(
                page,
                pending_types=self.config.pending_types,
                inject_timeout_s=self.config.browser.inject_timeout_s,
            )
        if self.session is not None and not self._session_hooked:
            self.session.on_close(self._on_session_lost)
            self._session_hooked = True

        self._bridge = EventBridge(
            self._store,
            self._queue.put_nowait,
            pending_types=self.config.pending_types,
            max_tracked_ids=self.config.max_tracked_ids,
        )
        self._dispatch_task = ensure_task(self._dispatch_loop(), name="pywaweb-dispatch")
        # Wired ahead of the bridge so "authenticated" is queued before "ready".
        if self._store.info is not None:
            self._on_authenticated(self._store.info)
        self._auth_unsubscribe = self._store.on_authenticated(self._on_authenticated)
        # Attach before installing page hooks so no notification predates
        # the bridge's listeners.
        self._bridge.attach()
        await self._store.install()

    async def disconnect(self) -> None:
        await self._teardown("closed")

    async def wait_until_ready(self, timeout_s: float | None = None) -> None:
        if self._ready:
            return
        timeout = timeout_s if timeout_s is not None else self.config.ready_timeout_s
        try:
            await promise_timeout(timeout, self.events.wait_for(EVENT_READY))
        except asyncio.TimeoutError as e:
            assert timeout is not None
            raise ReadyTimeoutError(timeout) from e

    async def send_message(self, chat_id: str, text: str, *, quoted_id: str | None = None) -> str | None:
        """Send a text message; returns the new message id when the page reports it."""

        if not self._ready:
            raise NotReadyError("client is not ready")
        return await self.store.send_text(chat_id, text, quoted_id=quoted_id)

    async def reply(self, record: InboundRecord, text: str) -> str | None:
        chat_id = record.chat_id
        if not chat_id:
            raise ValueError(f"record {record.id} has no chat id")
        return await self.send_message(chat_id, text, quoted_id=record.id)

    async def get_chat(self, target: InboundRecord | str) -> ChatInfo | None:
        """Chat a message belongs to (or a chat by id); None when the page does not know it."""

        if isinstance(target, InboundRecord):
            chat_id = target.chat_id
            if not chat_id:
                raise ValueError(f"record {target.id} has no chat id")
        else:
            chat_id = target
        return await self.store.get_chat(chat_id)

    async def get_contact(self, target: InboundRecord | str) -> ContactInfo | None:
        """
        Contact who sent a message (or a contact by id).

        In groups the sender is the message author rather than the chat.
        """

        if isinstance(target, InboundRecord):
            author = target.payload.get("author")
            contact_id = author if isinstance(author, str) and author else target.sender
            if not contact_id:
                raise ValueError(f"record {target.id} has no sender")
        else:
            contact_id = target
        return await self.store.get_contact(contact_id)

    async def flush(self) -> None:
        """Wait until every event produced so far has reached the listeners."""

        if self._dispatch_task is None:
            return
        await self._queue.join()

    async def _dispatch_loop(self) -> None:
        # Exits once teardown has replaced the task, including when a
        # listener calls `disconnect()` from inside this loop.
        while self._dispatch_task is asyncio.current_task():
            event = await self._queue.get()
            try:
                await self._deliver(event)
            except Exception:
                logger.exception("listener failed while handling %s", type(event).__name__)
            finally:
                self._queue.task_done()

    async def _deliver(self, event: DomainEvent) -> None:
        if isinstance(event, Authenticated):
            logger.info("authenticated as %s", event.info.wid)
            await self.events.emit(EVENT_AUTHENTICATED, event.info)
        elif isinstance(event, StateReady):
            self._ready = True
            logger.info("client ready")
            await self.events.emit(EVENT_READY)
        elif isinstance(event, MessageAdded):
            await self._emit_message(event.record)
        elif isinstance(event, MessageTypeResolved):
            await self.events.emit(EVENT_MESSAGE_TYPE_RESOLVED, event.record, event.previous_type)
            # Nothing was delivered for the placeholder, so this is the
            # first time listeners see the message.
            await self._emit_message(event.record)
        elif isinstance(event, MessageRemoved):
            await self.events.emit(EVENT_MESSAGE_REMOVED, event.record)
        else:
            logger.debug("dropping unhandled event %r", event)

    async def _emit_message(self, record: InboundRecord) -> None:
        logger.debug("message %s (type=%s, from_me=%s)", record.id, record.type, record.from_me)
        await self.events.emit(EVENT_MESSAGE_CREATE, record)
        if not record.from_me:
            await self.events.emit(EVENT_MESSAGE, record)

    def _on_authenticated(self, info: ClientInfo) -> None:
        if self._authenticated:
            return
        self._authenticated = True
        self._queue.put_nowait(Authenticated(info))

    def _on_session_lost(self, reason: str) -> None:
        if self._connected and self._lost_task is None:
            self._lost_task = ensure_task(self._teardown(reason), name="pywaweb-session-lost")

    async def _teardown(self, reason: str | None) -> None:
        was_connected = self._connected
        self._connected = False
        self._ready = False

        unsubscribe, self._auth_unsubscribe = self._auth_unsubscribe, None
        if unsubscribe is not None:
            unsubscribe()
        self._authenticated = False
        if self._bridge is not None:
            self._bridge.detach()
        task, self._dispatch_task = self._dispatch_task, None
        await cancel_suppress(task)
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()

        if self.session is not None:
            await self.session.close()
            # The page store is bound to the closed page.
            if isinstance(self._store, PageRemoteStore):
                self._store = None

        self._lost_task = None
        if was_connected and reason is not None:
            logger.info("client disconnected: %s", reason)
            await self.events.emit(EVENT_DISCONNECTED, reason)
