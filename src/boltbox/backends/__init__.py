"""Backend implementations, registered as ``boltbox.backends.*`` entry points."""
