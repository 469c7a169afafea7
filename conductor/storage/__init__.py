"""Audit storage."""

from .storage import IStorage, Storage

__all__ = ["IStorage", "Storage"]
