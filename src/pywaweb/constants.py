from __future__ import annotations

DEFAULT_URL = "https://web.whatsapp.com"

# Chrome UA; WhatsApp Web refuses to load for headless/unknown agents.
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/133.0.0.0 Safari/537.36"
)

DEFAULT_BROWSER_ARGS = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",
)

# Record types that are placeholders awaiting a later type change.
# "ciphertext" is what WhatsApp Web shows until a message is decrypted.
DEFAULT_PENDING_TYPES = frozenset({"ciphertext"})

DEFAULT_MAX_TRACKED_IDS = 10_000

# Name of the function exposed to the page for pushing notifications.
PAGE_BINDING_NAME = "__pywawebEmit"

# Public client events.
EVENT_AUTHENTICATED = "authenticated"
EVENT_AUTH_FAILURE = "auth_failure"
EVENT_READY = "ready"
EVENT_MESSAGE = "message"
EVENT_MESSAGE_CREATE = "message_create"
EVENT_MESSAGE_REMOVED = "message_removed"
EVENT_MESSAGE_TYPE_RESOLVED = "message_type_resolved"
EVENT_DISCONNECTED = "disconnected"
