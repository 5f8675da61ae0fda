"""Metadata repository mapping public media IDs to remote references."""

from teleblob.metadata.store import MediaRepository

__all__ = ["MediaRepository"]
