"""Security primitives for localmem.

Provides:
- Auth token generation and owner-only persistence
- Timing-safe bearer token verification
- Loopback origin detection for CORS
- Input validation and sanitization (content, queries, metadata, container tags)
"""

import math
import os
import re
import secrets
import urllib.parse
from pathlib import Path
from typing import Any, Union

from localmem.errors import ValidationError
from localmem.log_config import get_logger

log = get_logger("auth")

# 256-bit secret, hex encoded
TOKEN_BYTES = 32
TOKEN_FILENAME = "auth_token"

LOOPBACK_HOSTS = {"localhost", "127.0.0.1", "::1"}

MAX_QUERY_LENGTH = 1000
MAX_METADATA_KEYS = 50
MAX_METADATA_KEY_LENGTH = 128
MAX_METADATA_VALUE_LENGTH = 1024
MAX_TAG_LENGTH = 100

# Snapshot integers are signed 64-bit
MIN_METADATA_INT = -(2**63)
MAX_METADATA_INT = 2**63 - 1

_QUERY_CONTROL_CHARS = re.compile(r"[\x00-\x1F\x7F]")
_METADATA_KEY = re.compile(r"^[\w.-]+$")
_TAG_CHARS = re.compile(r"^[A-Za-z0-9_-]+$")

MetadataValue = Union[str, int, float, bool]


# ═══════════════════════════════════════════════════════════════════════════════
# AUTH TOKEN
# ═══════════════════════════════════════════════════════════════════════════════


def generate_token() -> str:
    """Generate a new 256-bit auth token."""
    return secrets.token_hex(TOKEN_BYTES)


def write_private_file(path: Path, data: str) -> None:
    """Write a file readable and writable by the owner only (0o600)."""
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    try:
        f = os.fdopen(fd, "w")
    except Exception:
        os.close(fd)
        raise
    # From here the file object owns fd
    with f:
        f.write(data)
    # O_CREAT mode is ignored for pre-existing files
    os.chmod(path, 0o600)


def load_or_create_token(data_dir: Path) -> str:
    """Load the persisted auth token, creating it on first run.

    The token is never rotated automatically; deleting the token file is the
    only way to get a new one.

    Args:
        data_dir: Directory holding the token file

    Returns:
        The auth token
    """
    token_path = data_dir / TOKEN_FILENAME
    if token_path.exists():
        try:
            token = token_path.read_text().strip()
        except OSError as e:
            log.warning(f"Failed to read token file {token_path}: {e}")
            token = ""
        if token:
            log.debug(f"Loaded auth token from {token_path}")
            return token
        log.warning(f"Token file {token_path} is empty or unreadable, regenerating")

    data_dir.mkdir(parents=True, exist_ok=True, mode=0o700)
    token = generate_token()
    write_private_file(token_path, token + "\n")
    log.info(f"Generated new auth token: {token_path}")
    return token


def extract_bearer_token(authorization: str | None) -> str | None:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    if not authorization:
        return None
    scheme, _, credentials = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    credentials = credentials.strip()
    return credentials or None


def verify_token(provided: str | None, expected: str) -> bool:
    """Timing-safe comparison of a provided token against the stored one.

    Lengths are checked first, but a mismatch still runs a full constant-time
    comparison so the rejection takes as long as a same-length miss.
    """
    if provided is None:
        return False
    provided_bytes = provided.encode("utf-8")
    expected_bytes = expected.encode("utf-8")
    if len(provided_bytes) != len(expected_bytes):
        secrets.compare_digest(expected_bytes, expected_bytes)
        return False
    return secrets.compare_digest(provided_bytes, expected_bytes)


# ═══════════════════════════════════════════════════════════════════════════════
# ORIGINS
# ═══════════════════════════════════════════════════════════════════════════════


def is_loopback_host(hostname: str | None) -> bool:
    """Check whether a hostname is the loopback address or name."""
    if not hostname:
        return False
    return hostname.lower().strip("[]") in LOOPBACK_HOSTS


def is_loopback_origin(origin: str | None) -> bool:
    """Check whether a CORS ``Origin`` header points at a loopback host."""
    if not origin:
        return False
    try:
        parsed = urllib.parse.urlparse(origin)
        hostname = parsed.hostname
    except ValueError:
        return False
    if parsed.scheme not in ("http", "https"):
        return False
    return is_loopback_host(hostname)


# ═══════════════════════════════════════════════════════════════════════════════
# SANITIZATION
# ═══════════════════════════════════════════════════════════════════════════════


def is_utf8_encodable(value: str) -> bool:
    """False for strings holding lone surrogates, which cannot be persisted."""
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def validate_content(content: str | None, max_length: int) -> str:
    """Validate memory content, returning it unchanged.

    Content is stored verbatim; anything that cannot be stored as-is is
    rejected rather than rewritten.

    Raises:
        ValidationError: If content is blank, too long, or not valid UTF-8
    """
    if not content or not content.strip():
        raise ValidationError("content is required")
    if len(content) > max_length:
        raise ValidationError(f"content exceeds {max_length:,} characters")
    if not is_utf8_encodable(content):
        raise ValidationError("content is not valid UTF-8")
    return content


def validate_custom_id(custom_id: str) -> str:
    """Validate a caller-supplied memory id, returning it unchanged.

    Ids appear as a single path segment in ``DELETE /memories/{id}``, so
    they may not contain ``/``.

    Raises:
        ValidationError: If the id contains '/' or is not valid UTF-8
    """
    if "/" in custom_id:
        raise ValidationError("customId must not contain '/'")
    if not is_utf8_encodable(custom_id):
        raise ValidationError("customId is not valid UTF-8")
    return custom_id


def sanitize_query(query: str | None) -> str:
    """Truncate, strip control characters and collapse whitespace."""
    if not query:
        return ""
    sanitized = _QUERY_CONTROL_CHARS.sub(" ", query[:MAX_QUERY_LENGTH])
    return " ".join(sanitized.split())


def sanitize_metadata(metadata: dict[str, Any] | None) -> dict[str, MetadataValue]:
    """Keep only well-formed keys with scalar values.

    Keys must match ``[\\w.-]+`` and fit MAX_METADATA_KEY_LENGTH; at most
    MAX_METADATA_KEYS entries survive. Strings are truncated. Strings that
    are not valid UTF-8, integers outside the signed 64-bit range, non-finite
    floats and non-scalar values are dropped.
    """
    if not metadata:
        return {}

    sanitized: dict[str, MetadataValue] = {}
    for key, value in metadata.items():
        if len(sanitized) >= MAX_METADATA_KEYS:
            log.debug(f"Metadata truncated at {MAX_METADATA_KEYS} keys")
            break
        if not isinstance(key, str) or len(key) > MAX_METADATA_KEY_LENGTH:
            continue
        if not _METADATA_KEY.match(key):
            continue

        if isinstance(value, bool):
            sanitized[key] = value
        elif isinstance(value, str):
            if is_utf8_encodable(value):
                sanitized[key] = value[:MAX_METADATA_VALUE_LENGTH]
        elif isinstance(value, int):
            if MIN_METADATA_INT <= value <= MAX_METADATA_INT:
                sanitized[key] = value
        elif isinstance(value, float) and math.isfinite(value):
            sanitized[key] = value

    return sanitized


def validate_container_tag(tag: str) -> str:
    """Validate a container tag, returning it unchanged.

    Raises:
        ValidationError: If the tag is empty, too long, or malformed
    """
    if not tag:
        raise ValidationError("containerTag is empty")
    if len(tag) > MAX_TAG_LENGTH:
        raise ValidationError(f"containerTag exceeds {MAX_TAG_LENGTH} characters")
    if not _TAG_CHARS.match(tag):
        raise ValidationError(
            "containerTag contains invalid characters "
            "(only alphanumeric, underscore, hyphen allowed)"
        )
    if tag[0] in "-_" or tag[-1] in "-_":
        raise ValidationError("containerTag must not start or end with - or _")
    return tag
