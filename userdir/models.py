"""Domain models for the user directory."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import IntEnum
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Gender(IntEnum):
    FEMALE = 0
    MALE = 1
    UNSPECIFIED = 2


@dataclass(frozen=True)
class CallerIdentity:
    """The authenticated account performing a request."""

    login: str
    admin: bool = False


@dataclass
class UserRecord:
    """Represents a user account held by the record store."""

    login: str
    password: str
    name: str
    gender: Gender = Gender.FEMALE
    birthday: Optional[date] = None
    admin: bool = False
    created_by: str = ""
    created_on: datetime = field(default_factory=utcnow)
    modified_on: Optional[datetime] = None
    modified_by: Optional[str] = None
    revoked_on: Optional[datetime] = None
    revoked_by: Optional[str] = None
    guid: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def is_active(self) -> bool:
        return self.revoked_on is None

    def touch(self, actor: str, when: datetime) -> None:
        """Stamp the record as modified by ``actor``."""

        self.modified_on = when
        self.modified_by = actor

    def revoke(self, actor: str, when: datetime) -> None:
        self.revoked_on = when
        self.revoked_by = actor
        self.touch(actor, when)

    def restore(self, actor: str, when: datetime) -> None:
        self.revoked_on = None
        self.revoked_by = None
        self.touch(actor, when)

    def age_on(self, today: date) -> Optional[int]:
        """Return the age in whole years on ``today``, or ``None`` without a birthday."""

        if self.birthday is None:
            return None
        years = today.year - self.birthday.year
        if (self.birthday.month, self.birthday.day) > (today.month, today.day):
            years -= 1
        return years


__all__ = ["CallerIdentity", "Gender", "UserRecord", "utcnow"]
