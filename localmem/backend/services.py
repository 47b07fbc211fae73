"""Service layer for the localmem backend.

The store and profile extractor are owned objects built once per app by
create_app() and attached to ``app.state``; handlers reach them through
these dependencies instead of module globals.
"""

from fastapi import Request

from localmem.backend.config import BackendConfig
from localmem.log_config import get_logger
from localmem.memory import MemoryStore
from localmem.profile import ProfileExtractor, RegexProfileExtractor

log = get_logger("backend.services")


def build_memory_store(config: BackendConfig) -> MemoryStore:
    """Create the MemoryStore backed by the configured snapshot file."""
    log.info(f"Initializing MemoryStore at {config.snapshot_path}")
    return MemoryStore(config.snapshot_path, max_content_chars=config.max_content_chars)


def build_profile_extractor() -> ProfileExtractor:
    """Create the default profile extraction strategy."""
    return RegexProfileExtractor()


def get_memory_store(request: Request) -> MemoryStore:
    """FastAPI dependency: the app's MemoryStore."""
    return request.app.state.store


def get_profile_extractor(request: Request) -> ProfileExtractor:
    """FastAPI dependency: the app's ProfileExtractor."""
    return request.app.state.profile_extractor
