"""Utility modules."""

from boltbox.utils.validation import normalize_sandbox_path, validate_identifier

__all__ = ["normalize_sandbox_path", "validate_identifier"]
