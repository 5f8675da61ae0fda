"""
TeleBlob: a disk-backed retrieval cache in front of the Telegram Bot API.
"""

__version__ = "0.1.0"
