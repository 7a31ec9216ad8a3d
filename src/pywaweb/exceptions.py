from __future__ import annotations


class PywawebError(Exception):
    """Base error for the pywaweb library."""


class BrowserError(PywawebError):
    """Browser launch, navigation or page evaluation failure."""


class ScriptInjectionError(PywawebError):
    """
    The injected page script could not hook WhatsApp Web internals.

    Usually means the page is not logged in yet or the web app changed its
    module names.
    """


class ReadyTimeoutError(PywawebError):
    """The remote store did not finish its initial sync in time."""

    def __init__(self, timeout_s: float) -> None:
        super().__init__(f"client not ready after {timeout_s:g}s")
        self.timeout_s = timeout_s


class NotReadyError(PywawebError):
    """A command was issued before the client became ready."""


class SendError(PywawebError):
    """The page refused to send a message."""

    def __init__(self, *, chat_id: str, reason: str) -> None:
        super().__init__(f"failed to send message to {chat_id}: {reason}")
        self.chat_id = chat_id
        self.reason = reason


class AuthenticationError(PywawebError):
    """No WhatsApp account is logged in to the page."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"authentication failed: {reason}")
        self.reason = reason
