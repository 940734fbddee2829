"""Table host package: serves the Hold'em table service over WebSockets."""

from .server import ClientSession, HostServer

__all__ = ["ClientSession", "HostServer"]
