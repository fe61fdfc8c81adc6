"""Input validation and filename helpers."""

from __future__ import annotations

import re
from urllib.parse import urlparse

from pagesave.core.exceptions import InvalidURLError, ValidationError

CONFLICT_ACTIONS = ("uniquify", "overwrite", "skip", "prompt")

# Characters rejected by common filesystems, plus ASCII control characters
INVALID_FILENAME_CHARS = re.compile(r'[<>:"|?*\x00-\x1f]')


def validate_server_url(url: str) -> str:
    """Validate and normalize a server URL.

    Args:
        url: URL to validate.

    Returns:
        URL without trailing slash.

    Raises:
        InvalidURLError: If the URL is not http(s) or has no host.
    """
    if not url:
        raise InvalidURLError(url, "URL is required")

    parsed = urlparse(url.strip())
    if parsed.scheme not in ("http", "https"):
        raise InvalidURLError(url, "scheme must be http or https")
    if not parsed.netloc:
        raise InvalidURLError(url, "missing host")

    return url.strip().rstrip("/")


def validate_conflict_action(action: str) -> str:
    """Validate a filename conflict action.

    Raises:
        ValidationError: If the action is not one of CONFLICT_ACTIONS.
    """
    normalized = (action or "").strip().lower()
    if normalized not in CONFLICT_ACTIONS:
        raise ValidationError(
            f"Invalid filename conflict action: {action}",
            field="filenameConflictAction",
            value=action,
        )
    return normalized


def sanitize_filename(filename: str, replacement: str = "_") -> str:
    """Replace characters that cannot appear in a local path segment.

    Directory separators are kept so that filename templates can create
    sub-folders; ``..`` segments are dropped.

    Args:
        filename: Relative filename, possibly with sub-folders.
        replacement: Character substituted for invalid ones.

    Returns:
        Sanitized relative filename.

    Raises:
        ValidationError: If nothing usable is left.
    """
    parts = []
    for part in re.split(r"[\\/]+", filename):
        part = INVALID_FILENAME_CHARS.sub(replacement, part).strip()
        if part and part not in (".", ".."):
            parts.append(part)
    if not parts:
        raise ValidationError("Filename is empty", field="filename", value=filename)
    return "/".join(parts)


def encode_sharp_character(path: str) -> str:
    """Percent-encode ``#`` so the path survives use inside a URL."""
    return path.replace("#", "%23")
