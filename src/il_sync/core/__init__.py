"""HTTP transport for the remote document store."""

from .client import SyncClient

__all__ = ["SyncClient"]
