"""Protocol interfaces for pluggable backends."""

from boltbox.protocols.sandbox import CommandResult, FileEntry, SandboxBackend, SandboxSpec

__all__ = [
    "CommandResult",
    "FileEntry",
    "SandboxBackend",
    "SandboxSpec",
]
