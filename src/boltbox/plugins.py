"""Backend discovery via Python entry points."""

from importlib.metadata import entry_points
from typing import Any

from boltbox.protocols import SandboxBackend

BACKEND_GROUPS = {
    "sandbox": "boltbox.backends.sandbox",
}


def discover_backends(group: str) -> dict[str, Any]:
    """Load every backend class registered for a group.

    Args:
        group: Short group name ("sandbox") or a full entry point group

    Returns:
        Mapping of backend name to class
    """
    eps = entry_points(group=BACKEND_GROUPS.get(group, group))
    return {ep.name: ep.load() for ep in eps}


def get_backend(group: str, name: str) -> Any:
    """Look up one backend class.

    Raises:
        ValueError: If no backend of that name is registered
    """
    backends = discover_backends(group)
    if name not in backends:
        available = ", ".join(sorted(backends)) or "(none)"
        raise ValueError(f"Unknown {group} backend '{name}'. Available: {available}")
    return backends[name]


def create_sandbox_backend(backend: str, **kwargs: Any) -> SandboxBackend:
    """Instantiate a sandbox backend by name.

    Args:
        backend: Registered name ("memory", "local", "e2b", "daytona" or a
            third-party plugin)
        **kwargs: Backend-specific settings; each backend ignores the ones it
            does not use
    """
    return get_backend("sandbox", backend)(**kwargs)
