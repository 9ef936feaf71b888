"""In-memory storage for user records."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import date
from typing import Iterator, List, Optional

from .models import Gender, UserRecord

SYSTEM_ACTOR = "System"


class RecordStore(ABC):
    """Interface for the canonical collection of user records.

    Implementations do not enforce login uniqueness; callers check with
    :meth:`find_by_login` while holding :meth:`locked`.
    """

    @abstractmethod
    def find_by_login(self, login: str) -> Optional[UserRecord]:
        """Return the record whose login matches exactly, if any."""

    @abstractmethod
    def list_all(self) -> List[UserRecord]:
        """Return every record, active or revoked, in insertion order."""

    @abstractmethod
    def insert(self, record: UserRecord) -> None:
        ...

    @abstractmethod
    def remove(self, record: UserRecord) -> None:
        ...

    @abstractmethod
    def locked(self):
        """Context manager that serializes access to the store."""


class InMemoryRecordStore(RecordStore):
    """List-backed store scanned linearly, guarded by a re-entrant lock."""

    def __init__(self) -> None:
        self._records: List[UserRecord] = []
        self._lock = threading.RLock()

    @contextmanager
    def locked(self) -> Iterator["InMemoryRecordStore"]:
        with self._lock:
            yield self

    def find_by_login(self, login: str) -> Optional[UserRecord]:
        with self._lock:
            for record in self._records:
                if record.login == login:
                    return record
        return None

    def list_all(self) -> List[UserRecord]:
        with self._lock:
            return list(self._records)

    def insert(self, record: UserRecord) -> None:
        with self._lock:
            self._records.append(record)

    def remove(self, record: UserRecord) -> None:
        with self._lock:
            for index, candidate in enumerate(self._records):
                if candidate is record:
                    del self._records[index]
                    return
        raise KeyError(f"User '{record.login}' is not held by this store")

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def seed_admin(
        self,
        *,
        login: str = "Admin",
        password: str = "Admin123",
        name: str = "Administrator",
        birthday: Optional[date] = None,
    ) -> UserRecord:
        """Insert the bootstrap administrator unless the login is already taken."""

        with self._lock:
            existing = self.find_by_login(login)
            if existing is not None:
                return existing
            record = UserRecord(
                login=login,
                password=password,
                name=name,
                gender=Gender.UNSPECIFIED,
                birthday=birthday,
                admin=True,
                created_by=SYSTEM_ACTOR,
            )
            self._records.append(record)
            return record


__all__ = ["InMemoryRecordStore", "RecordStore", "SYSTEM_ACTOR"]
