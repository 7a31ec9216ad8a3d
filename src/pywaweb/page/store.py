from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from playwright.async_api import Error as PlaywrightError

from ..constants import DEFAULT_PENDING_TYPES, PAGE_BINDING_NAME
from ..exceptions import AuthenticationError, BrowserError, ScriptInjectionError, SendError
from ..records import ChatInfo, ClientInfo, ContactInfo, InboundRecord
from ..remote import ObservableStore
from .scripts import GET_CHAT_SCRIPT, GET_CONTACT_SCRIPT, INSTALL_SCRIPT, SEND_TEXT_SCRIPT

logger = logging.getLogger(__name__)


def _coerce_flag(value: object) -> bool | None:
    return value if isinstance(value, bool) else None


class PageRemoteStore(ObservableStore):
    """
    Remote store backed by a live WhatsApp Web page.

    `install()` exposes a binding and injects `INSTALL_SCRIPT`; from then on
    the page pushes notifications which are replayed to listeners in arrival
    order. The sync flag is cached on the Python side, so reading it never
    touches the page.
    """

    def __init__(
        self,
        page: Any,
        *,
        pending_types: Iterable[str] = DEFAULT_PENDING_TYPES,
        binding_name: str = PAGE_BINDING_NAME,
        inject_timeout_s: float = 120.0,
    ) -> None:
        super().__init__()
        self.page = page
        self.pending_types = frozenset(pending_types)
        self.binding_name = binding_name
        self.inject_timeout_s = inject_timeout_s
        self._binding_exposed = False

    async def install(self) -> None:
        try:
            if not self._binding_exposed:
                await self.page.expose_binding(self.binding_name, self._on_binding)
                self._binding_exposed = True
            result = await self.page.evaluate(
                INSTALL_SCRIPT,
                {
                    "binding": self.binding_name,
                    "pendingTypes": sorted(self.pending_types),
                    "timeoutMs": int(self.inject_timeout_s * 1000),
                },
            )
        except PlaywrightError as e:
            raise ScriptInjectionError(f"failed to install page hooks: {e}") from e

        if not isinstance(result, Mapping):
            result = {}
        if result.get("ok") is False:
            raise AuthenticationError(str(result.get("error") or "unknown error"))

        me = result.get("me")
        if isinstance(me, Mapping):
            self._apply_auth(me)
        synced = result.get("synced")
        logger.debug("page hooks installed (synced=%r)", synced)
        self._set_sync_flag(_coerce_flag(synced))

    def _apply_auth(self, raw: Mapping[str, Any]) -> None:
        try:
            info = ClientInfo.from_js(raw)
        except ValueError as e:
            logger.warning("ignoring account info: %s", e)
            return
        self._set_authenticated(info)

    def _on_binding(self, _source: Any, payload: Any) -> None:
        self.handle_payload(payload)

    def handle_payload(self, payload: Any) -> None:
        """Apply one notification posted by the page script."""

        if not isinstance(payload, Mapping):
            logger.warning("ignoring non-object page payload: %r", payload)
            return

        kind = payload.get("kind")
        if kind == "sync":
            self._set_sync_flag(_coerce_flag(payload.get("value")))
            return
        if kind == "auth":
            info = payload.get("info")
            if isinstance(info, Mapping):
                self._apply_auth(info)
            else:
                logger.warning("ignoring auth payload without info")
            return

        raw = payload.get("record")
        if not isinstance(raw, Mapping):
            logger.warning("ignoring %s payload without record", kind)
            return
        try:
            record = InboundRecord.from_js(raw)
        except ValueError as e:
            logger.warning("ignoring %s payload: %s", kind, e)
            return

        if kind == "add":
            self._notify_added(record)
        elif kind == "remove":
            self._notify_removed(record)
        elif kind == "type":
            self._fire_type_change(record)
        else:
            logger.warning("ignoring unknown page payload kind %r", kind)

    async def send_text(self, chat_id: str, text: str, *, quoted_id: str | None = None) -> str | None:
        try:
            result = await self.page.evaluate(
                SEND_TEXT_SCRIPT, {"chatId": chat_id, "text": text, "quotedId": quoted_id}
            )
        except PlaywrightError as e:
            raise BrowserError(f"send evaluation failed: {e}") from e

        if not isinstance(result, Mapping) or not result.get("ok"):
            reason = result.get("error") if isinstance(result, Mapping) else None
            raise SendError(chat_id=chat_id, reason=str(reason or "unknown error"))
        msg_id = result.get("id")
        return msg_id if isinstance(msg_id, str) else None

    async def get_chat(self, chat_id: str) -> ChatInfo | None:
        raw = await self._lookup(GET_CHAT_SCRIPT, {"chatId": chat_id}, "chat")
        return ChatInfo.from_js(raw) if raw is not None else None

    async def get_contact(self, contact_id: str) -> ContactInfo | None:
        raw = await self._lookup(GET_CONTACT_SCRIPT, {"contactId": contact_id}, "contact")
        return ContactInfo.from_js(raw) if raw is not None else None

    async def _lookup(self, script: str, arg: dict[str, Any], key: str) -> Mapping[str, Any] | None:
        try:
            result = await self.page.evaluate(script, arg)
        except PlaywrightError as e:
            raise BrowserError(f"{key} lookup failed: {e}") from e

        if not isinstance(result, Mapping) or not result.get("ok"):
            reason = result.get("error") if isinstance(result, Mapping) else None
            raise BrowserError(f"{key} lookup failed: {reason or 'unknown error'}")
        raw = result.get(key)
        return raw if isinstance(raw, Mapping) else None
