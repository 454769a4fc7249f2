"""Sandbox backends: memory, local, e2b and daytona."""

from boltbox.backends.sandbox.daytona import DaytonaSandbox
from boltbox.backends.sandbox.e2b import E2BSandbox
from boltbox.backends.sandbox.local import LocalSandbox
from boltbox.backends.sandbox.memory import MemorySandbox

__all__ = ["DaytonaSandbox", "E2BSandbox", "LocalSandbox", "MemorySandbox"]
