"""
Configuration loader for the job applier
Reads and validates settings.yaml, with secrets taken from the environment / .env
"""

import yaml
import os
from pathlib import Path
from typing import Dict, Any, List, Optional
from datetime import datetime
import logging

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

_TRUE_VALUES = ("1", "true", "yes", "on")


class ConfigValidationError(ValueError):
    """Raised when configuration fails invariant validation."""
    pass


def _validate_non_negative(value: Any, field: str) -> None:
    """Validate that a numeric value is non-negative."""
    if value is not None and float(value) < 0:
        raise ConfigValidationError(
            f"Invalid config: '{field}' must be non-negative, got {value}"
        )


def _validate_positive(value: Any, field: str) -> None:
    """Validate that a numeric value is positive (> 0)."""
    if value is not None and float(value) <= 0:
        raise ConfigValidationError(
            f"Invalid config: '{field}' must be positive (> 0), got {value}"
        )


def _env_first(*names: str) -> str:
    for name in names:
        value = (os.getenv(name) or "").strip()
        if value:
            return value
    return ""


def _env_flag(name: str) -> Optional[bool]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    return raw.strip().lower() in _TRUE_VALUES


class ConfigLoader:
    """Loads and validates configuration from YAML file"""

    def __init__(self, config_path: str = "config/settings.yaml", env_file: Optional[str] = ".env"):
        self.config_path = Path(config_path)
        self.env_file = env_file
        self.config: Dict[str, Any] = {}
        self._load()

    def _load(self) -> None:
        """Load config from YAML file"""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        if self.env_file:
            load_dotenv(dotenv_path=self.env_file, override=False)

        try:
            with open(self.config_path, 'r') as f:
                self.config = yaml.safe_load(f) or {}
            logger.info(f"✓ Config loaded from {self.config_path}")
        except yaml.YAMLError as e:
            logger.error(f"Error parsing config file: {e}")
            raise

        if not isinstance(self.config, dict):
            raise ConfigValidationError(f"Invalid config: top level of {self.config_path} must be a mapping")

        self._validate_invariants()

    def _validate_invariants(self) -> None:
        """Validate configuration invariants. Raises ConfigValidationError on failure."""
        # Browser timeouts (must be positive)
        _validate_positive(self.get('browser.page_timeout'), 'browser.page_timeout')
        _validate_positive(self.get('browser.navigation_timeout'), 'browser.navigation_timeout')
        _validate_positive(self.get('browser.selector_timeout'), 'browser.selector_timeout')
        _validate_positive(self.get('browser.launch_timeout'), 'browser.launch_timeout')
        _validate_positive(self.get('browser.max_retries'), 'browser.max_retries')

        # Search limits
        _validate_non_negative(self.get('search.radius'), 'search.radius')
        _validate_non_negative(self.get('search.max_days_old'), 'search.max_days_old')
        _validate_positive(self.get('search.max_pages'), 'search.max_pages')
        _validate_positive(self.get('crawler.max_workers'), 'crawler.max_workers')

        # Application quota
        _validate_non_negative(self.get('application.daily_quota'), 'application.daily_quota')

        if not isinstance(self.get_keywords(), list):
            raise ConfigValidationError("Invalid config: 'search.keywords' must be a list")
        if not isinstance(self.get_locations(), list):
            raise ConfigValidationError("Invalid config: 'search.locations' must be a list")

        # Proxy settings (validated only when enabled)
        if self.is_proxy_enabled():
            if not self._get_proxy_server_raw():
                raise ConfigValidationError(
                    "Proxy is enabled but no server is configured. "
                    "Set browser.proxy.server or browser.proxy.host+browser.proxy.port "
                    "(or env PROXY_HOST+PROXY_PORT)."
                )
            mode = self.get_proxy_rotation_mode()
            if mode not in ("sticky", "rotating"):
                raise ConfigValidationError(
                    f"Invalid config: 'browser.proxy.rotation_mode' must be sticky or rotating, got {mode!r}"
                )
            _validate_non_negative(self.get_proxy_session_ttl_seconds(), 'browser.proxy.session_ttl_seconds')

        logger.debug("✓ Config invariants validated")

    def get(self, key: str, default: Any = None) -> Any:
        """Get config value by dot notation (e.g., 'search.keywords')"""
        keys = key.split('.')
        value = self.config

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k, default)
            else:
                return default

        return value

    # === Search Config ===

    def get_keywords(self) -> List[str]:
        """Get list of job search keywords"""
        return self.get('search.keywords', [])

    def get_locations(self) -> List[str]:
        """Get list of search locations (city/state or zip code)"""
        locations = self.get('search.locations', None)
        if locations is None:
            single = self.get('search.location', 'Remote')
            return [single] if single else []
        return locations

    def get_radius(self) -> int:
        """Get search radius in miles"""
        return int(self.get('search.radius', 25))

    def get_max_days_old(self) -> Optional[int]:
        """Get recency cutoff in days (None disables it)"""
        value = self.get('search.max_days_old', 7)
        return None if value is None else int(value)

    def get_max_pages(self) -> int:
        """Get max pages to paginate per search"""
        return int(self.get('search.max_pages', 5))

    def get_job_boards(self) -> List[str]:
        """Get list of job boards to search"""
        return self.get('search.job_boards', ['indeed'])

    def get_max_workers(self) -> int:
        """Get number of concurrent (board, location) crawls"""
        return int(self.get('crawler.max_workers', 1))

    # === Browser Config ===

    def is_headless(self) -> bool:
        """Check if browser should run in headless mode"""
        override = _env_flag('HEADLESS')
        if override is not None:
            return override
        return bool(self.get('browser.headless', True))

    def get_page_timeout(self) -> int:
        """Get default page action timeout in milliseconds"""
        return int(self.get('browser.page_timeout', 30) * 1000)

    def get_navigation_timeout(self) -> int:
        """Get navigation timeout in milliseconds"""
        return int(self.get('browser.navigation_timeout', 30) * 1000)

    def get_selector_timeout(self) -> int:
        """Get results selector wait timeout in milliseconds"""
        return int(self.get('browser.selector_timeout', 15) * 1000)

    def get_launch_timeout(self) -> int:
        """Get browser launch timeout in milliseconds"""
        return int(self.get('browser.launch_timeout', 60) * 1000)

    def get_max_retries(self) -> int:
        """Get navigation attempts per result page"""
        return int(self.get('browser.max_retries', 3))

    def get_browser_channel(self) -> str:
        """Get Playwright browser channel override"""
        return self.get('browser.channel', '') or ''

    def get_browser_executable_path(self) -> str:
        """Get browser executable path override"""
        return self.get('browser.executable_path', '') or ''

    def get_storage_state_path(self) -> Optional[Path]:
        """Get path of the saved login cookies (Playwright storage state)"""
        path = self.get('browser.storage_state', 'config/session.json')
        return Path(path) if path else None

    # === Proxy Config ===

    def is_proxy_enabled(self) -> bool:
        """Check if the proxy should be used (USE_PROXY env overrides config)."""
        override = _env_flag('USE_PROXY')
        if override is not None:
            return override
        return bool(self.get("browser.proxy.enabled", False))

    def get_proxy_provider(self) -> str:
        provider = (self.get("browser.proxy.provider", "") or os.getenv("PROXY_PROVIDER") or "").strip().lower()
        return provider or "generic"

    def get_proxy_rotation_mode(self) -> str:
        mode = (self.get("browser.proxy.rotation_mode", "") or os.getenv("PROXY_ROTATION") or "sticky")
        return mode.strip().lower()

    def get_proxy_session_ttl_seconds(self) -> int:
        value = self.get("browser.proxy.session_ttl_seconds", 0)
        try:
            return max(int(value), 0)
        except (TypeError, ValueError):
            return 0

    def get_proxy_username_template(self) -> Optional[str]:
        template = (self.get("browser.proxy.username_template", "") or "").strip()
        return template or None

    def _get_proxy_server_raw(self) -> str:
        server = (self.get("browser.proxy.server", "") or "").strip()
        if server:
            return server

        host = (self.get("browser.proxy.host", "") or "").strip() or _env_first("DECODO_HOST", "PROXY_HOST")
        port = str(self.get("browser.proxy.port", "") or "").strip() or _env_first("DECODO_PORT", "PROXY_PORT")
        if host and port:
            return f"{host}:{port}"
        return ""

    def get_proxy_server(self) -> str:
        server_raw = self._get_proxy_server_raw()
        if not server_raw:
            return ""
        return server_raw if "://" in server_raw else f"http://{server_raw}"

    def get_proxy_manager_settings(self) -> Dict[str, Any]:
        """
        Return settings for proxy_manager.ProxyManager.

        Credentials may fall back to env vars; the session token format is
        provider-specific and handled by ProxyManager.
        """
        username = (
            (self.get("browser.proxy.username", "") or "").strip()
            or _env_first("DECODO_USERNAME", "PROXY_USER")
        )
        password = (
            (self.get("browser.proxy.password", "") or "").strip()
            or _env_first("DECODO_PASSWORD", "PROXY_PASS")
        )
        enabled = self.is_proxy_enabled()
        return {
            "enabled": bool(enabled),
            "provider": self.get_proxy_provider(),
            "server": self.get_proxy_server() if enabled else "",
            "username": username,
            "password": password,
            "username_template": self.get_proxy_username_template(),
            "rotation_mode": self.get_proxy_rotation_mode(),
            "session_ttl_seconds": self.get_proxy_session_ttl_seconds(),
        }

    # === Credentials ===

    def get_board_credentials(self, board: str = "indeed") -> Dict[str, str]:
        """Read board login credentials from env (never stored in config)."""
        prefix = board.upper()
        email_env = self.get(f'credentials.{board}.email_env', f'{prefix}_EMAIL')
        password_env = self.get(f'credentials.{board}.password_env', f'{prefix}_PASSWORD')
        return {
            "email": (os.getenv(email_env) or "").strip(),
            "password": (os.getenv(password_env) or "").strip(),
        }

    def validate_credentials(self, board: str = "indeed") -> None:
        creds = self.get_board_credentials(board)
        if not creds["email"] or not creds["password"]:
            raise ConfigValidationError(
                f"Missing {board} credentials: set {board.upper()}_EMAIL and {board.upper()}_PASSWORD"
            )

    # === Application Config ===

    def get_daily_quota(self) -> int:
        """Get max applications per day"""
        return int(self.get('application.daily_quota', 25))

    def is_dry_run(self) -> bool:
        """Check if applications should be simulated only"""
        override = _env_flag('DRY_RUN')
        if override is not None:
            return override
        return bool(self.get('application.dry_run', False))

    def get_resume_path(self) -> Optional[Path]:
        path = self.get('application.resume_path', '') or ''
        return Path(path) if path else None

    def get_cover_letter_path(self) -> Optional[Path]:
        path = self.get('application.cover_letter_path', '') or ''
        return Path(path) if path else None

    # === Storage Config ===

    def get_database_path(self) -> Path:
        """Get SQLite job store path"""
        return Path(os.getenv('JOB_DB_PATH') or self.get('storage.database_path', 'data/jobs.db'))

    # === Output / Logging Config ===

    def get_metrics_template(self) -> str:
        return self.get('output.metrics_file', 'output/run_metrics_{timestamp}.json')

    def get_log_level(self) -> str:
        """Get logging level"""
        return str(os.getenv('LOG_LEVEL') or self.get('logging.level', 'INFO')).upper()

    def get_log_file(self) -> Path:
        """Get log file path with timestamp"""
        template = self.get('logging.log_file', 'logs/job_applier_{timestamp}.log')
        timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
        filename = template.replace('{timestamp}', timestamp)
        return Path(filename)

    def __repr__(self) -> str:
        keywords = self.get_keywords()
        locations = self.get_locations()
        return f"<Config: {len(keywords)} keywords, {len(locations)} locations>"


# Convenience function
def load_config(config_path: str = "config/settings.yaml") -> ConfigLoader:
    """Load configuration from file"""
    return ConfigLoader(config_path)
