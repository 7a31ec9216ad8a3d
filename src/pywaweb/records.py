from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any


class IsNew(Enum):
    """
    Tri-state "is new" marker carried by WhatsApp Web message models.

    The page reports `isNewMsg` as `true`, `false` or `undefined`. Only an
    explicit `false` means "cached/history replay"; `undefined` shows up for
    live messages too (typically every message after the first one in a
    session), so it must not be folded into `False`.
    """

    TRUE = "true"
    FALSE = "false"
    UNKNOWN = "unknown"

    @classmethod
    def from_raw(cls, value: object) -> IsNew:
        # Identity checks on purpose: 0, "" and None are not `false`.
        if value is True:
            return cls.TRUE
        if value is False:
            return cls.FALSE
        return cls.UNKNOWN


@dataclass(frozen=True, slots=True)
class InboundRecord:
    """
    One message as observed in the remote store.

    `payload` keeps the serialized page model as-is; the properties below are
    conveniences over its well-known keys.
    """

    id: str
    is_new: IsNew = IsNew.UNKNOWN
    type: str = "chat"
    payload: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_js(cls, data: Mapping[str, Any]) -> InboundRecord:
        """
        Build a record from the dict produced by the injected page script.

        Raises `ValueError` when the record has no usable id.
        """

        rid = data.get("id")
        if not isinstance(rid, str) or not rid:
            raise ValueError(f"record without id: {data!r}")
        rtype = data.get("type")
        return cls(
            id=rid,
            is_new=IsNew.from_raw(data.get("isNewMsg")),
            type=rtype if isinstance(rtype, str) and rtype else "unknown",
            payload=dict(data),
        )

    def with_type(self, new_type: str) -> InboundRecord:
        payload = dict(self.payload)
        payload["type"] = new_type
        return replace(self, type=new_type, payload=payload)

    @property
    def from_me(self) -> bool:
        return bool(self.payload.get("fromMe"))

    @property
    def chat_id(self) -> str | None:
        v = self.payload.get("chatId")
        return v if isinstance(v, str) else None

    @property
    def sender(self) -> str | None:
        v = self.payload.get("from")
        return v if isinstance(v, str) else None

    @property
    def body(self) -> str | None:
        v = self.payload.get("body")
        return v if isinstance(v, str) else None

    @property
    def timestamp_s(self) -> int | None:
        v = self.payload.get("t")
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            return None
        return int(v)


def _str_or_none(value: object) -> str | None:
    return value if isinstance(value, str) and value else None


@dataclass(frozen=True, slots=True)
class ClientInfo:
    """The account logged in to the page."""

    wid: str
    pushname: str | None = None
    platform: str | None = None

    @classmethod
    def from_js(cls, data: Mapping[str, Any]) -> ClientInfo:
        wid = _str_or_none(data.get("wid"))
        if wid is None:
            raise ValueError(f"account info without wid: {data!r}")
        return cls(
            wid=wid,
            pushname=_str_or_none(data.get("pushname")),
            platform=_str_or_none(data.get("platform")),
        )

    @property
    def user(self) -> str:
        """Phone number part of the wid ("15551234567" for "15551234567@c.us")."""
        return self.wid.partition("@")[0]


@dataclass(frozen=True, slots=True)
class ChatInfo:
    id: str
    name: str | None = None
    is_group: bool = False
    unread_count: int = 0

    @classmethod
    def from_js(cls, data: Mapping[str, Any]) -> ChatInfo:
        cid = _str_or_none(data.get("id"))
        if cid is None:
            raise ValueError(f"chat without id: {data!r}")
        unread = data.get("unreadCount")
        return cls(
            id=cid,
            name=_str_or_none(data.get("name")),
            is_group=data.get("isGroup") is True or cid.endswith("@g.us"),
            unread_count=unread if isinstance(unread, int) and not isinstance(unread, bool) else 0,
        )


@dataclass(frozen=True, slots=True)
class ContactInfo:
    """
    Best-effort contact metadata.

    - `name` is the name saved in this account's address book.
    - `pushname` is the name the contact set for themselves.
    """

    id: str
    name: str | None = None
    pushname: str | None = None
    short_name: str | None = None
    is_me: bool = False
    is_business: bool = False

    @classmethod
    def from_js(cls, data: Mapping[str, Any]) -> ContactInfo:
        cid = _str_or_none(data.get("id"))
        if cid is None:
            raise ValueError(f"contact without id: {data!r}")
        return cls(
            id=cid,
            name=_str_or_none(data.get("name")),
            pushname=_str_or_none(data.get("pushname")),
            short_name=_str_or_none(data.get("shortName")),
            is_me=data.get("isMe") is True,
            is_business=data.get("isBusiness") is True,
        )

    @property
    def display_name(self) -> str | None:
        return self.pushname or self.name


@dataclass(frozen=True, slots=True)
class DomainEvent:
    """Base class for events produced by the bridge."""


@dataclass(frozen=True, slots=True)
class StateReady(DomainEvent):
    pass


@dataclass(frozen=True, slots=True)
class MessageAdded(DomainEvent):
    record: InboundRecord


@dataclass(frozen=True, slots=True)
class MessageRemoved(DomainEvent):
    record: InboundRecord


@dataclass(frozen=True, slots=True)
class MessageTypeResolved(DomainEvent):
    """A deferred placeholder record changed to a concrete type."""

    record: InboundRecord
    previous_type: str


@dataclass(frozen=True, slots=True)
class Authenticated(DomainEvent):
    info: ClientInfo
