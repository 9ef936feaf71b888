"""Core utilities for the user directory service."""

from __future__ import annotations

from typing import Any

from .models import CallerIdentity, Gender, UserRecord
from .store import InMemoryRecordStore, RecordStore


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the directory API application."""

    from .api import create_app as _create_app

    return _create_app(*args, **kwargs)


__all__ = [
    "CallerIdentity",
    "Gender",
    "InMemoryRecordStore",
    "RecordStore",
    "UserRecord",
    "create_app",
]
