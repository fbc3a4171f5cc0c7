"""Runtime configuration for the sync daemon.

Reads sync settings from CLI args, environment variables, .env files, and
YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    IL_SYNC_ROOT: Local directory to keep in sync (required)
    IL_SYNC_SERVER_URL: Document store URL (required)
    IL_SYNC_AUTH_TOKEN: Sync token (optional; without it push/pull are skipped)
    IL_SYNC_INSECURE: Skip SSL verification (optional, default: false)
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DEFAULT_BLOB_HOST = "blob.vercel-storage.com"


@dataclass
class Config:
    sync_root: str
    server_url: str
    auth_token: str = ""
    last_sync_at: str = ""
    blob_host: str = DEFAULT_BLOB_HOST
    document_extensions: tuple[str, ...] = (".md",)
    debounce_seconds: float = 3.0
    pull_interval_seconds: float = 30.0
    timeout_seconds: float = 60.0
    insecure: bool = False
    debug: bool = False

    @property
    def root_path(self) -> Path:
        """The sync root as an absolute, user-expanded path."""
        return Path(self.sync_root).expanduser().resolve()


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If the root is missing, the URL is malformed, or a
            timer is not positive.
    """
    if not config.sync_root.strip():
        raise ValueError(
            "Sync root cannot be empty. Set IL_SYNC_ROOT or run 'il-sync init'."
        )

    config.server_url = config.server_url.strip()

    if not config.server_url.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid server URL '{config.server_url}': must start with http:// or https://"
        )

    parsed = urlparse(config.server_url)
    if not parsed.hostname:
        raise ValueError(
            f"Invalid server URL '{config.server_url}': URL must include a hostname"
        )

    config.server_url = config.server_url.removesuffix("/")

    for name in ("debounce_seconds", "pull_interval_seconds", "timeout_seconds"):
        if getattr(config, name) <= 0:
            raise ValueError(f"{name} must be positive")

    if not config.auth_token:
        logger.warning(
            "No auth token configured; push and pull will be skipped. "
            "Run 'il-sync init' to sign in."
        )

    if config.insecure:
        logger.warning(
            "WARNING: SSL verification disabled (insecure=True). Use only for development."
        )


def load_config(
    sync_root: str | None = None,
    server_url: str | None = None,
    auth_token: str | None = None,
    insecure: bool = False,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        sync_root: Override sync root.
        server_url: Override server URL.
        auth_token: Override sync token.
        insecure: Skip SSL verification (CLI flag).
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Dict of values from the YAML config file ``sync``
            section.  Used as fallback when CLI arg and env var are both
            unset.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If the root or server URL is missing after checking
            all sources, or a value is invalid.
    """
    fb = yaml_fallbacks or {}

    # --- String fields: CLI > env > YAML > error ---

    root = sync_root or os.getenv("IL_SYNC_ROOT") or fb.get("root")
    if not root:
        raise ValueError(
            "Sync root not found. Set IL_SYNC_ROOT environment variable, "
            "pass --root, or run 'il-sync init'."
        )

    url = server_url or os.getenv("IL_SYNC_SERVER_URL") or fb.get("server_url")
    if not url:
        raise ValueError(
            "Server URL not found. Set IL_SYNC_SERVER_URL environment variable, "
            "pass --server-url, or run 'il-sync init'."
        )

    token = auth_token or os.getenv("IL_SYNC_AUTH_TOKEN") or fb.get("auth_token") or ""

    # --- Boolean fields: CLI > env > YAML > default ---

    def get_bool_env(key: str) -> bool | None:
        """Return True/False from env var, or None if unset."""
        val = os.getenv(key)
        if val is None:
            return None
        return val.lower() in ("true", "1", "yes", "on")

    if insecure:
        final_insecure = True
    else:
        env_insecure = get_bool_env("IL_SYNC_INSECURE")
        if env_insecure is not None:
            final_insecure = env_insecure
        else:
            final_insecure = bool(fb.get("insecure", False))

    # --- Remaining fields: YAML > default ---

    extensions = fb.get("document_extensions") or (".md",)

    config = Config(
        sync_root=str(root).strip(),
        server_url=str(url).strip(),
        auth_token=str(token).strip(),
        last_sync_at=str(fb.get("last_sync_at") or ""),
        blob_host=fb.get("blob_host") or DEFAULT_BLOB_HOST,
        document_extensions=tuple(extensions),
        debounce_seconds=float(fb.get("debounce_seconds", 3.0)),
        pull_interval_seconds=float(fb.get("pull_interval_seconds", 30.0)),
        timeout_seconds=float(fb.get("timeout_seconds", 60.0)),
        insecure=final_insecure,
        debug=debug,
    )

    validate_config(config)

    return config
