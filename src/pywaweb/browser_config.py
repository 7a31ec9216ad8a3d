from __future__ import annotations

from dataclasses import dataclass, field

from .constants import DEFAULT_BROWSER_ARGS, DEFAULT_URL, DEFAULT_USER_AGENT


@dataclass(slots=True)
class BrowserConfig:
    url: str = DEFAULT_URL
    headless: bool = True

    # Chromium profile directory. Keeps the WhatsApp Web login between runs;
    # None launches a throwaway context that needs pairing every time.
    user_data_dir: str | None = "./.pywaweb_auth"

    args: tuple[str, ...] = DEFAULT_BROWSER_ARGS
    user_agent: str = DEFAULT_USER_AGENT
    viewport: tuple[int, int] = (1280, 720)

    navigation_timeout_s: float = 60.0
    # How long to wait for the page internals the injected script hooks into.
    inject_timeout_s: float = 120.0

    extra_http_headers: dict[str, str] = field(default_factory=dict)
