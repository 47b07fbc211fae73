"""Backend configuration for the localmem server.

Settings come from LOCALMEM_* environment variables (and a .env file in
the working directory, if present). The server only ever binds to a
loopback interface.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from localmem.log_config import get_logger
from localmem.memory import SNAPSHOT_FILENAME
from localmem.security import TOKEN_FILENAME, is_loopback_host

log = get_logger("backend.config")

DEFAULT_PORT = 19877

load_dotenv(Path.cwd() / ".env")


def _get_env(key: str, default: str) -> str:
    """Get environment variable with LOCALMEM_ prefix."""
    return os.environ.get(f"LOCALMEM_{key}", default)


@dataclass
class BackendConfig:
    """Configuration for the backend API server.

    Attributes:
        host: Bind address, must be loopback (default: 127.0.0.1)
        port: Listen port (default: 19877)
        data_dir: Directory for the snapshot and token files (default: ~/.localmem)
        max_body_mb: Request body cap in megabytes (default: 10)
        max_content_chars: Memory content cap in characters (default: 100000)
    """

    host: str = field(default_factory=lambda: _get_env("HOST", "127.0.0.1"))
    port: int = field(default_factory=lambda: int(_get_env("PORT", str(DEFAULT_PORT))))
    data_dir: Path = field(
        default_factory=lambda: Path(_get_env("DATA_DIR", str(Path.home() / ".localmem")))
    )
    max_body_mb: int = field(default_factory=lambda: int(_get_env("MAX_BODY_MB", "10")))
    max_content_chars: int = field(
        default_factory=lambda: int(_get_env("MAX_CONTENT_CHARS", "100000"))
    )

    def __post_init__(self):
        """Validate settings and ensure the data directory exists."""
        if not is_loopback_host(self.host):
            raise ValueError(
                f"localmem only binds to loopback interfaces, got host={self.host!r}. "
                "Use 127.0.0.1 or localhost."
            )
        if self.max_body_mb <= 0:
            raise ValueError(f"max_body_mb must be positive, got {self.max_body_mb}")

        if isinstance(self.data_dir, str):
            self.data_dir = Path(self.data_dir)
        self.data_dir = self.data_dir.expanduser()
        self.data_dir.mkdir(parents=True, exist_ok=True, mode=0o700)

        log.debug(f"Config initialized: data_dir={self.data_dir}, host={self.host}, port={self.port}")

    @property
    def snapshot_path(self) -> Path:
        """JSON snapshot holding every container tag."""
        return self.data_dir / SNAPSHOT_FILENAME

    @property
    def token_path(self) -> Path:
        """Owner-only auth token file."""
        return self.data_dir / TOKEN_FILENAME

    @property
    def max_body_bytes(self) -> int:
        """Get max request body size in bytes."""
        return self.max_body_mb * 1024 * 1024


# Global config instance
_config: BackendConfig | None = None


def get_config() -> BackendConfig:
    """Get or create the global config instance."""
    global _config
    if _config is None:
        _config = BackendConfig()
    return _config


def reset_config() -> None:
    """Reset config for testing."""
    global _config
    _config = None
