"""User lifecycle and query operations.

Every public method of :class:`UserDirectory` runs inside the store lock, so
the existence checks and the mutation that follows them are atomic. Failures
raise :class:`~userdir.errors.DirectoryError` subclasses before any field is
touched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Callable, List, Optional

from .errors import BadRequestError, ConflictError, NotFoundError
from .models import CallerIdentity, Gender, UserRecord, utcnow
from .policy import Action, evaluate, not_found_message
from .store import RecordStore

logger = logging.getLogger("userdir.operations")

MIN_AGE = 0
MAX_AGE = 150

EMPTY_REQUEST_MESSAGE = "The request contains no data. Check the request body."


@dataclass(frozen=True)
class CreateUserRequest:
    login: str
    password: str
    name: str
    gender: Gender = Gender.FEMALE
    birthday: Optional[date] = None
    admin: bool = False


@dataclass(frozen=True)
class UpdateInfoRequest:
    target_login: str
    name: str
    gender: Gender = Gender.FEMALE
    birthday: Optional[date] = None


@dataclass(frozen=True)
class ChangePasswordRequest:
    target_login: str
    new_password: str


@dataclass(frozen=True)
class ChangeLoginRequest:
    target_login: str
    new_login: str


@dataclass(frozen=True)
class LoginChange:
    old_login: str
    new_login: str


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def _require_target_login(value: Optional[str]) -> str:
    if _is_blank(value):
        raise BadRequestError("Target login is not specified.")
    return value  # type: ignore[return-value]


def _snapshot(record: UserRecord) -> UserRecord:
    return replace(record)


class UserDirectory:
    """Applies the access policy and mutates the record store."""

    def __init__(
        self,
        store: RecordStore,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._clock = clock

    @property
    def store(self) -> RecordStore:
        return self._store

    def today(self) -> date:
        return self._clock().date()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def create_user(
        self,
        caller: Optional[CallerIdentity],
        request: Optional[CreateUserRequest],
    ) -> UserRecord:
        if request is None:
            raise BadRequestError(EMPTY_REQUEST_MESSAGE)

        with self._store.locked():
            if self._store.find_by_login(request.login) is not None:
                raise ConflictError(f"User with login '{request.login}' already exists.")

            self._enforce(caller, Action.CREATE, None, request.login)
            assert caller is not None

            record = UserRecord(
                login=request.login,
                password=request.password,
                name=request.name,
                gender=Gender(request.gender),
                birthday=request.birthday,
                admin=request.admin,
                created_by=caller.login,
                created_on=self._clock(),
            )
            self._store.insert(record)
            logger.info("User %s created by %s (admin=%s)", record.login, caller.login, record.admin)
            return _snapshot(record)

    def update_info(
        self,
        caller: Optional[CallerIdentity],
        request: Optional[UpdateInfoRequest],
    ) -> UserRecord:
        if request is None:
            raise BadRequestError(EMPTY_REQUEST_MESSAGE)
        target_login = _require_target_login(request.target_login)

        with self._store.locked():
            target = self._resolve_target(caller, Action.UPDATE_INFO, target_login)

            target.name = request.name
            target.gender = Gender(request.gender)
            target.birthday = request.birthday
            assert caller is not None
            target.touch(caller.login, self._clock())
            logger.info("Profile of %s updated by %s", target.login, target.modified_by)
            return _snapshot(target)

    def change_password(
        self,
        caller: Optional[CallerIdentity],
        request: Optional[ChangePasswordRequest],
    ) -> UserRecord:
        if request is None:
            raise BadRequestError(EMPTY_REQUEST_MESSAGE)
        target_login = _require_target_login(request.target_login)
        if _is_blank(request.new_password):
            raise BadRequestError("The new password must not be empty.")

        with self._store.locked():
            target = self._resolve_target(caller, Action.CHANGE_PASSWORD, target_login)

            target.password = request.new_password
            assert caller is not None
            target.touch(caller.login, self._clock())
            logger.info("Password of %s changed by %s", target.login, target.modified_by)
            return _snapshot(target)

    def change_login(
        self,
        caller: Optional[CallerIdentity],
        request: Optional[ChangeLoginRequest],
    ) -> LoginChange:
        if request is None:
            raise BadRequestError(EMPTY_REQUEST_MESSAGE)
        if _is_blank(request.new_login):
            raise BadRequestError("The new login must not be empty.")
        target_login = _require_target_login(request.target_login)

        with self._store.locked():
            target = self._store.find_by_login(target_login)
            if caller is None or target is None:
                self._enforce(caller, Action.CHANGE_LOGIN, target, target_login)
            if self._store.find_by_login(request.new_login) is not None:
                raise ConflictError(
                    f"Login '{request.new_login}' is already taken by another user."
                )
            self._enforce(caller, Action.CHANGE_LOGIN, target, target_login)
            assert caller is not None and target is not None

            target.login = request.new_login
            target.touch(caller.login, self._clock())
            logger.info("Login %s renamed to %s by %s", target_login, target.login, caller.login)
            return LoginChange(old_login=target_login, new_login=request.new_login)

    def delete_user(
        self,
        caller: Optional[CallerIdentity],
        login: Optional[str],
        *,
        soft_delete: bool,
    ) -> UserRecord:
        """Revoke (``soft_delete``) or remove the record for ``login``.

        Returns a snapshot of the record as it was after the change, or as it
        was just before removal for a hard delete.
        """

        if _is_blank(login):
            raise BadRequestError("User login is not specified.")
        assert login is not None

        with self._store.locked():
            target = self._resolve_target(caller, Action.DELETE, login)
            assert caller is not None

            if soft_delete:
                if not target.is_active:
                    raise ConflictError(f"User '{login}' has already been deleted.")
                target.revoke(caller.login, self._clock())
                logger.info("User %s soft-deleted by %s", login, caller.login)
                return _snapshot(target)

            snapshot = _snapshot(target)
            self._store.remove(target)
            logger.info("User %s permanently deleted by %s", login, caller.login)
            return snapshot

    def restore_user(
        self,
        caller: Optional[CallerIdentity],
        login: Optional[str],
    ) -> UserRecord:
        if _is_blank(login):
            raise BadRequestError("User login is not specified.")
        assert login is not None

        with self._store.locked():
            target = self._resolve_target(caller, Action.RESTORE, login)
            assert caller is not None

            if target.is_active:
                raise ConflictError(f"User '{login}' is already active.")
            target.restore(caller.login, self._clock())
            logger.info("User %s restored by %s", login, caller.login)
            return _snapshot(target)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def active_users(self, caller: Optional[CallerIdentity]) -> List[UserRecord]:
        with self._store.locked():
            self._enforce(caller, Action.LIST, None, None)
            active = [record for record in self._store.list_all() if record.is_active]
            active.sort(key=lambda record: record.created_on)
            return [_snapshot(record) for record in active]

    def user_by_login(
        self,
        caller: Optional[CallerIdentity],
        login: Optional[str],
    ) -> UserRecord:
        if _is_blank(login):
            raise BadRequestError("Login is not specified.")
        assert login is not None

        with self._store.locked():
            self._enforce(caller, Action.LIST, None, login)
            record = self._store.find_by_login(login)
            if record is None:
                raise NotFoundError(not_found_message(login))
            return _snapshot(record)

    def self_profile(self, caller: Optional[CallerIdentity]) -> UserRecord:
        with self._store.locked():
            login = caller.login if caller is not None else None
            own = self._store.find_by_login(login) if login is not None else None
            self._enforce(caller, Action.READ_SELF, own, login)
            assert own is not None
            return _snapshot(own)

    def users_older_than(
        self,
        caller: Optional[CallerIdentity],
        age: int,
    ) -> List[UserRecord]:
        """Return active users whose age in whole years is strictly above ``age``."""

        if age < MIN_AGE or age > MAX_AGE:
            raise BadRequestError(f"Age must be between {MIN_AGE} and {MAX_AGE}.")

        today = self.today()
        with self._store.locked():
            self._enforce(caller, Action.LIST, None, None)
            matches: List[UserRecord] = []
            for record in self._store.list_all():
                if not record.is_active:
                    continue
                record_age = record.age_on(today)
                if record_age is not None and record_age > age:
                    matches.append(_snapshot(record))
            return matches

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _resolve_target(
        self,
        caller: Optional[CallerIdentity],
        action: Action,
        login: str,
    ) -> UserRecord:
        target = self._store.find_by_login(login)
        self._enforce(caller, action, target, login)
        assert target is not None
        return target

    def _enforce(
        self,
        caller: Optional[CallerIdentity],
        action: Action,
        target: Optional[UserRecord],
        login: Optional[str],
    ) -> None:
        decision = evaluate(caller, action, target, login=login)
        if decision.denial is not None:
            logger.info(
                "Denied %s on %s for %s: %s",
                action.value,
                login or "-",
                caller.login if caller is not None else "<anonymous>",
                decision.denial.value,
            )
        decision.enforce()


__all__ = [
    "ChangeLoginRequest",
    "ChangePasswordRequest",
    "CreateUserRequest",
    "LoginChange",
    "MAX_AGE",
    "MIN_AGE",
    "UpdateInfoRequest",
    "UserDirectory",
]
