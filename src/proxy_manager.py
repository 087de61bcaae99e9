"""
Proxy session manager for Playwright with session affinity ("sticky sessions").

Each identity is the proxy endpoint plus a username carrying a session token.
Residential providers map a session token to one egress IP, so regenerating
the token is how the crawler asks for a new IP between result pages.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

ROTATION_MODES = ("sticky", "rotating")


def _now() -> float:
    return time.time()


def _new_session_id() -> str:
    return uuid.uuid4().hex[:12]


def _looks_like_session_tagged(username: str) -> bool:
    lower = (username or "").lower()
    return "-session-" in lower or "_session_" in lower or "-sessid-" in lower or "_sessid_" in lower


@dataclass(frozen=True)
class ProxyIdentity:
    """An egress identity: endpoint + (session-scoped) credentials."""

    server: str
    username: Optional[str] = None
    password: Optional[str] = None
    session_id: Optional[str] = None

    def to_playwright(self) -> Dict[str, str]:
        proxy: Dict[str, str] = {"server": self.server}
        if self.username:
            proxy["username"] = self.username
        if self.password:
            proxy["password"] = self.password
        return proxy


@dataclass
class _SessionState:
    session_id: str
    expires_at: Optional[float]
    rotations: int = 0

    def is_expired(self) -> bool:
        return self.expires_at is not None and _now() >= self.expires_at


@dataclass(frozen=True)
class ProxyManagerSettings:
    enabled: bool
    provider: str
    server: str
    username: str
    password: str
    username_template: Optional[str] = None
    rotation_mode: str = "sticky"
    session_ttl_seconds: int = 0


class ProxyManager:
    """
    Manages a proxy endpoint + session affinity.

    Notes:
    - Playwright proxy settings are fixed per browser context. After rotate()
      the caller must rebuild its context for the new identity to take effect.
    - Session tokens are embedded into the username. Supported forms:
        - `username_template` (or the username itself) containing `{session}`
        - provider == "decodo": `user-<name>-session-<token>`
        - provider == "iproyal": `<name>-session-<token>`
    - In "rotating" mode the provider hands out a new IP per connection, so
      there is no session token and rotate() is a no-op.
    """

    def __init__(self, settings: ProxyManagerSettings) -> None:
        self.settings = settings
        self._lock = threading.Lock()
        self._session: Optional[_SessionState] = None
        self._total_rotations: int = 0

    @classmethod
    def from_config(cls, config: Any) -> "ProxyManager":
        """Build a ProxyManager from ConfigLoader.get_proxy_manager_settings()."""
        settings = ProxyManagerSettings(**config.get_proxy_manager_settings())
        return cls(settings)

    @classmethod
    def disabled(cls) -> "ProxyManager":
        return cls(ProxyManagerSettings(enabled=False, provider="generic", server="", username="", password=""))

    def is_enabled(self) -> bool:
        return bool(self.settings.enabled and self.settings.server)

    def is_sticky(self) -> bool:
        mode = (self.settings.rotation_mode or "sticky").strip().lower()
        return mode == "sticky"

    def _get_or_create_session(self) -> Optional[str]:
        if not self.is_enabled() or not self.is_sticky():
            return None

        state = self._session
        if state is None or state.is_expired():
            ttl = int(self.settings.session_ttl_seconds or 0)
            expires_at = (_now() + ttl) if ttl > 0 else None
            rotations = state.rotations if state else 0
            state = _SessionState(session_id=_new_session_id(), expires_at=expires_at, rotations=rotations)
            self._session = state

        return state.session_id

    def _build_username(self, session_id: Optional[str]) -> str:
        base = (self.settings.username or "").strip()
        template = (self.settings.username_template or "").strip() or None
        provider = (self.settings.provider or "generic").strip().lower()

        # Allow users to put `{session}` in the username itself.
        if "{session}" in base and not template:
            template = base
            base = ""

        if template:
            if session_id:
                return template.replace("{session}", session_id)
            return template.replace("-session-{session}", "").replace("{session}", "")

        if not session_id or not base or _looks_like_session_tagged(base):
            return base

        if provider == "decodo":
            prefix = base if base.startswith("user-") else f"user-{base}"
            return f"{prefix}-session-{session_id}"
        if provider == "iproyal":
            return f"{base}-session-{session_id}"

        return base

    def current_identity(self) -> Optional[ProxyIdentity]:
        """Identity to use for the next connection, or None when proxying is off."""
        if not self.is_enabled():
            return None

        with self._lock:
            session_id = self._get_or_create_session()
        username = self._build_username(session_id)
        password = (self.settings.password or "").strip()
        return ProxyIdentity(
            server=self.settings.server,
            username=username or None,
            password=password or None,
            session_id=session_id,
        )

    def rotate(self, *, reason: str = "manual") -> None:
        """
        Regenerate the session token so the provider assigns a new egress IP.

        The change of IP is not verified here.
        """
        if not self.is_enabled() or not self.is_sticky():
            return

        with self._lock:
            ttl = int(self.settings.session_ttl_seconds or 0)
            expires_at = (_now() + ttl) if ttl > 0 else None
            prev = self._session
            rotations = (prev.rotations + 1) if prev else 1
            self._session = _SessionState(session_id=_new_session_id(), expires_at=expires_at, rotations=rotations)
            self._total_rotations += 1

        logger.info(
            "Proxy session rotated (provider=%s, rotations=%d, reason=%s)",
            self.settings.provider,
            self._total_rotations,
            reason,
        )

    def get_playwright_proxy(self) -> Optional[Dict[str, str]]:
        """
        Return Playwright proxy dict or None.

        Example:
          {"server": "http://host:port", "username": "...", "password": "..."}
        """
        identity = self.current_identity()
        return identity.to_playwright() if identity else None

    def get_stats(self) -> Dict[str, Any]:
        """Get proxy manager statistics."""
        return {
            "enabled": self.is_enabled(),
            "provider": self.settings.provider,
            "rotation_mode": self.settings.rotation_mode,
            "total_rotations": self._total_rotations,
        }
