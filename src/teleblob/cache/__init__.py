"""
Cache package for retrieved media.

This package provides:
- CacheStore (base.py): Abstract interface for TTL-bounded key->bytes stores
- FileCache (file_cache.py): On-disk store keyed by identifier digests
- RetrievalOrchestrator (retrieval.py): Cache-aside resolution with fetch coalescing
- CacheSweeper (sweeper.py): Periodic expiry sweep
"""

from teleblob.cache.base import CacheStore
from teleblob.cache.file_cache import FileCache
from teleblob.cache.retrieval import RetrievalOrchestrator
from teleblob.cache.sweeper import CacheSweeper

__all__ = ["CacheStore", "CacheSweeper", "FileCache", "RetrievalOrchestrator"]
