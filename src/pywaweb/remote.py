from __future__ import annotations

import contextlib
import logging
import secrets
import time
from collections import defaultdict
from collections.abc import Callable
from typing import Any, Protocol

from .exceptions import AuthenticationError
from .records import ChatInfo, ClientInfo, ContactInfo, InboundRecord, IsNew

logger = logging.getLogger(__name__)

Unsubscribe = Callable[[], None]
SyncListener = Callable[[bool | None], None]
RecordListener = Callable[[InboundRecord], None]
AuthListener = Callable[[ClientInfo], None]


class RemoteStore(Protocol):
    """
    Observable view of the WhatsApp Web page state.

    All callbacks are invoked synchronously on the event loop thread. Every
    subscription returns a callable that removes it.
    """

    @property
    def sync_flag(self) -> bool | None: ...

    def on_sync_change(self, listener: SyncListener) -> Unsubscribe: ...

    def on_record_added(self, listener: RecordListener) -> Unsubscribe: ...

    def on_record_removed(self, listener: RecordListener) -> Unsubscribe: ...

    def watch_record_type(self, record_id: str, listener: RecordListener) -> Unsubscribe:
        """One-time watch: `listener` gets the updated record on the next type change."""
        ...


class MessageSender(Protocol):
    async def send_text(
        self, chat_id: str, text: str, *, quoted_id: str | None = None
    ) -> str | None: ...


class SessionStore(Protocol):
    """Account and directory side of a store: login state, chats and contacts."""

    @property
    def info(self) -> ClientInfo | None: ...

    def on_authenticated(self, listener: AuthListener) -> Unsubscribe: ...

    async def install(self) -> None:
        """Start observing; raises `AuthenticationError` when no account is logged in."""
        ...

    async def get_chat(self, chat_id: str) -> ChatInfo | None: ...

    async def get_contact(self, contact_id: str) -> ContactInfo | None: ...


class ObservableStore:
    """
    Listener bookkeeping shared by the concrete stores.

    Subclasses feed changes in through the `_set_authenticated`,
    `_set_sync_flag`, `_notify_*` and `_fire_type_change` helpers.
    """

    def __init__(self) -> None:
        self._sync_flag: bool | None = None
        self._info: ClientInfo | None = None
        self._auth_listeners: list[AuthListener] = []
        self._sync_listeners: list[SyncListener] = []
        self._added_listeners: list[RecordListener] = []
        self._removed_listeners: list[RecordListener] = []
        self._type_watchers: dict[str, list[RecordListener]] = defaultdict(list)

    @property
    def sync_flag(self) -> bool | None:
        return self._sync_flag

    @property
    def info(self) -> ClientInfo | None:
        return self._info

    def on_authenticated(self, listener: AuthListener) -> Unsubscribe:
        return self._subscribe(self._auth_listeners, listener)

    def on_sync_change(self, listener: SyncListener) -> Unsubscribe:
        return self._subscribe(self._sync_listeners, listener)

    def on_record_added(self, listener: RecordListener) -> Unsubscribe:
        return self._subscribe(self._added_listeners, listener)

    def on_record_removed(self, listener: RecordListener) -> Unsubscribe:
        return self._subscribe(self._removed_listeners, listener)

    def watch_record_type(self, record_id: str, listener: RecordListener) -> Unsubscribe:
        self._type_watchers[record_id].append(listener)

        def _unwatch() -> None:
            watchers = self._type_watchers.get(record_id)
            if not watchers:
                return
            with contextlib.suppress(ValueError):
                watchers.remove(listener)
            if not watchers:
                self._type_watchers.pop(record_id, None)

        return _unwatch

    @property
    def watched_ids(self) -> frozenset[str]:
        return frozenset(self._type_watchers)

    @staticmethod
    def _subscribe(listeners: list[Any], listener: Callable[..., None]) -> Unsubscribe:
        listeners.append(listener)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                listeners.remove(listener)

        return _unsubscribe

    def _set_sync_flag(self, value: bool | None) -> None:
        if value == self._sync_flag:
            return
        self._sync_flag = value
        for listener in list(self._sync_listeners):
            listener(value)

    def _set_authenticated(self, info: ClientInfo) -> None:
        if info == self._info:
            return
        self._info = info
        for listener in list(self._auth_listeners):
            listener(info)

    def _notify_added(self, record: InboundRecord) -> None:
        for listener in list(self._added_listeners):
            listener(record)

    def _notify_removed(self, record: InboundRecord) -> None:
        for listener in list(self._removed_listeners):
            listener(record)

    def _fire_type_change(self, record: InboundRecord) -> None:
        # Watches are one-shot: drop them before calling out so a listener
        # may re-register for the same id.
        watchers = self._type_watchers.pop(record.id, None)
        if not watchers:
            return
        for listener in watchers:
            listener(record)


class InMemoryRemoteStore(ObservableStore):
    """
    In-process remote store.

    Holds records, chats and contacts in dicts and lets the caller drive login,
    sync and record changes directly. Useful for tests and for embedding the bridge without a browser.
    """

    def __init__(
        self,
        *,
        synced: bool | None = None,
        me: str | None = None,
        pushname: str | None = None,
        auth_error: str | None = None,
    ) -> None:
        super().__init__()
        self._sync_flag = synced
        self.me = me
        # A store built with `me` starts out logged in.
        if me is not None:
            self._info = ClientInfo(wid=me, pushname=pushname)
        self.auth_error = auth_error
        self._records: dict[str, InboundRecord] = {}
        self._chats: dict[str, ChatInfo] = {}
        self._contacts: dict[str, ContactInfo] = {}

    async def install(self) -> None:
        if self.auth_error is not None:
            raise AuthenticationError(self.auth_error)

    def authenticate(self, wid: str, *, pushname: str | None = None) -> None:
        self.me = wid
        self._set_authenticated(ClientInfo(wid=wid, pushname=pushname))

    def set_synced(self, value: bool | None = True) -> None:
        self._set_sync_flag(value)

    def add_record(self, record: InboundRecord) -> None:
        self._records[record.id] = record
        self._notify_added(record)

    def remove_record(self, record_id: str) -> InboundRecord | None:
        record = self._records.pop(record_id, None)
        if record is None:
            logger.debug("remove of unknown record %s ignored", record_id)
            return None
        self._notify_removed(record)
        return record

    def set_record_type(self, record_id: str, new_type: str) -> InboundRecord:
        """Change a record's type, firing any watch registered for it."""

        record = self._records[record_id]
        if record.type == new_type:
            return record
        updated = record.with_type(new_type)
        self._records[record_id] = updated
        self._fire_type_change(updated)
        return updated

    def get_record(self, record_id: str) -> InboundRecord | None:
        return self._records.get(record_id)

    def list_records(self) -> list[InboundRecord]:
        return list(self._records.values())

    def upsert_chat(self, chat: ChatInfo) -> None:
        self._chats[chat.id] = chat

    def upsert_contact(self, contact: ContactInfo) -> None:
        self._contacts[contact.id] = contact

    async def get_chat(self, chat_id: str) -> ChatInfo | None:
        return self._chats.get(chat_id)

    async def get_contact(self, contact_id: str) -> ContactInfo | None:
        return self._contacts.get(contact_id)

    async def send_text(self, chat_id: str, text: str, *, quoted_id: str | None = None) -> str:
        """Echo an outgoing message back as a new `fromMe` record, like the page does."""

        rid = f"true_{chat_id}_{secrets.token_hex(8).upper()}"
        self.add_record(
            InboundRecord(
                id=rid,
                is_new=IsNew.TRUE,
                type="chat",
                payload={
                    "id": rid,
                    "isNewMsg": True,
                    "type": "chat",
                    "body": text,
                    "from": self.me,
                    "to": chat_id,
                    "chatId": chat_id,
                    "fromMe": True,
                    "t": int(time.time()),
                    "quotedMsgId": quoted_id,
                },
            )
        )
        return rid
