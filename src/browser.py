"""
Browser session - Playwright browser/context/page lifecycle

One session owns one page. The proxy identity is fixed per browser context,
so switching identity means closing the context and opening a new one.
"""

import logging
from pathlib import Path
from typing import Optional
from playwright.sync_api import sync_playwright, Page, Browser, BrowserContext, Playwright

from proxy_manager import ProxyManager

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36"
)
LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",
    "--no-first-run",
    "--no-default-browser-check",
]


def _looks_like_proxy_failure(message: str) -> bool:
    msg = (message or "").lower()
    markers = (
        "err_proxy_connection_failed",
        "err_tunnel_connection_failed",
        "proxy authentication",
        "authentication required",
        "407",
    )
    return any(marker in msg for marker in markers)


class BrowserSession:
    """A Chromium page behind the proxy manager's current identity."""

    def __init__(self, config, proxy_manager: Optional[ProxyManager] = None,
                 storage_state: Optional[Path] = None):
        self.config = config
        self.proxy_manager = proxy_manager
        self.storage_state = storage_state
        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    @property
    def page(self) -> Page:
        if self._page is None:
            raise RuntimeError("Browser session not started")
        return self._page

    def start(self) -> "BrowserSession":
        """Launch the browser and open the first context"""
        logger.info("Starting browser...")
        self.playwright = sync_playwright().start()
        channel = self.config.get_browser_channel() or None
        executable_path = self.config.get_browser_executable_path() or None

        if executable_path and not Path(executable_path).exists():
            logger.warning("Browser executable not found: %s", executable_path)
            executable_path = None

        try:
            self.browser = self.playwright.chromium.launch(
                headless=self.config.is_headless(),
                args=LAUNCH_ARGS,
                channel=channel,
                executable_path=executable_path,
                timeout=self.config.get_launch_timeout(),
            )
            self._open_context()
        except Exception:
            self.close()
            raise
        logger.info("Browser started successfully")
        return self

    def _open_context(self) -> None:
        context_kwargs = dict(
            viewport={"width": 1920, "height": 1080},
            user_agent=USER_AGENT,
            locale="en-US",
            timezone_id="America/Chicago",
        )
        proxy = self.proxy_manager.get_playwright_proxy() if self.proxy_manager else None
        if proxy:
            context_kwargs["proxy"] = proxy
            logger.info("Proxy enabled: %s (user=%s)", proxy.get("server"), proxy.get("username", "-"))
        if self.storage_state and self.storage_state.exists():
            logger.info("Loading session from %s", self.storage_state)
            context_kwargs["storage_state"] = str(self.storage_state)

        try:
            self.context = self.browser.new_context(**context_kwargs)
        except Exception as exc:
            if proxy and _looks_like_proxy_failure(str(exc)):
                logger.error(
                    "Proxy connection/auth failed for %s. Check credentials and connectivity.",
                    proxy.get("server"),
                )
            raise

        self._page = self.context.new_page()
        self._page.set_default_timeout(self.config.get_page_timeout())
        self._page.set_default_navigation_timeout(self.config.get_navigation_timeout())

    def refresh_identity(self) -> None:
        """Reopen the context so the proxy manager's current identity is used."""
        if self.browser is None:
            raise RuntimeError("Browser session not started")
        self._close_context()
        self._open_context()

    def save_storage_state(self) -> None:
        if self.context is None or self.storage_state is None:
            return
        self.storage_state.parent.mkdir(parents=True, exist_ok=True)
        self.context.storage_state(path=str(self.storage_state))
        logger.info("Session saved to %s", self.storage_state)

    def _close_context(self) -> None:
        try:
            if self.context:
                self.context.close()
        except Exception:
            logger.debug("Browser context close failed", exc_info=True)
        self.context = None
        self._page = None

    def close(self) -> None:
        """Clean up browser resources"""
        self._close_context()
        try:
            if self.browser:
                self.browser.close()
        except Exception:
            logger.debug("Browser close failed", exc_info=True)
        try:
            if self.playwright:
                self.playwright.stop()
        except Exception:
            logger.debug("Playwright stop failed", exc_info=True)
        self.browser = None
        self.playwright = None
        logger.info("Browser closed")

    def __enter__(self) -> "BrowserSession":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
