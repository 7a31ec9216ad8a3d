"""
pywaweb: an asyncio-first WhatsApp Web client driven through a real browser.

The page's own model layer is observed through an injected script; an
`EventBridge` reconciles its snapshot state and live notifications into a
deduplicated, ordered event stream exposed by `WebClient`.
"""

from __future__ import annotations

from .bridge import EventBridge
from .client import ClientConfig, WebClient
from .exceptions import PywawebError
from .records import ChatInfo, ClientInfo, ContactInfo, InboundRecord, IsNew
from .remote import InMemoryRemoteStore

__all__ = [
    "ChatInfo",
    "ClientConfig",
    "ClientInfo",
    "ContactInfo",
    "EventBridge",
    "InMemoryRemoteStore",
    "InboundRecord",
    "IsNew",
    "PywawebError",
    "WebClient",
]

__version__ = "0.1.0"
