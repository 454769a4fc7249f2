"""HTTP server for boltbox."""

from boltbox.server.app import create_app

__all__ = ["create_app"]
