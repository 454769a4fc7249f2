"""Input validation utilities."""

import posixpath
import re

from boltbox.exceptions import BackendRejectedError

# Safe identifier pattern: alphanumeric, underscores, hyphens, dots
# Must start with letter or number
SAFE_IDENTIFIER_RE = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_.-]*$")


def validate_identifier(value: str, name: str = "identifier", max_length: int = 64) -> str:
    """Validate a safe identifier (user_id, project_id, session_id).

    Identifiers become part of sandbox names, so they are restricted to
    characters every provider accepts.

    Args:
        value: The identifier to validate
        name: Name of the field for error messages
        max_length: Maximum allowed length

    Returns:
        The validated identifier

    Raises:
        ValueError: If the identifier is invalid
    """
    if not value:
        raise ValueError(f"{name} cannot be empty")

    if len(value) > max_length:
        raise ValueError(f"{name} exceeds maximum length of {max_length}")

    if not SAFE_IDENTIFIER_RE.match(value):
        raise ValueError(
            f"Invalid {name}: must start with alphanumeric and contain only "
            "alphanumeric characters, dots, underscores, and hyphens"
        )

    # Prevent path traversal
    if ".." in value:
        raise ValueError(f"Invalid {name}: contains forbidden characters")

    return value


def normalize_sandbox_path(path: str, root: str = "/") -> str:
    """Resolve a path inside a sandbox filesystem to an absolute POSIX path.

    Relative paths are joined onto ``root``. The result never escapes ``/``.

    Raises:
        BackendRejectedError: If the path is empty or contains a NUL byte
    """
    if not path:
        raise BackendRejectedError("path cannot be empty")
    if "\x00" in path:
        raise BackendRejectedError("path contains a NUL byte")
    joined = path if path.startswith("/") else posixpath.join(root, path)
    return posixpath.normpath("/" + joined.lstrip("/"))
