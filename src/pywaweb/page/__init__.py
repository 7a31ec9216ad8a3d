from __future__ import annotations

from .browser import BrowserSession
from .store import PageRemoteStore

__all__ = [
    "BrowserSession",
    "PageRemoteStore",
]
