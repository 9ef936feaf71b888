"""Access decisions for directory actions.

The policy is a pure function: it never touches the store and never mutates
the records it is given. Operations look up the target first and pass it in.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from .errors import DirectoryError, ForbiddenError, NotFoundError, UnauthenticatedError
from .models import CallerIdentity, UserRecord


class Action(str, Enum):
    CREATE = "create"
    UPDATE_INFO = "update_info"
    CHANGE_PASSWORD = "change_password"
    CHANGE_LOGIN = "change_login"
    DELETE = "delete"
    RESTORE = "restore"
    LIST = "list"
    READ_SELF = "read_self"


class Denial(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"


ADMIN_ONLY = frozenset({Action.CREATE, Action.DELETE, Action.RESTORE, Action.LIST})
TARGETED = frozenset(
    {
        Action.UPDATE_INFO,
        Action.CHANGE_PASSWORD,
        Action.CHANGE_LOGIN,
        Action.DELETE,
        Action.RESTORE,
        Action.READ_SELF,
    }
)

UNAUTHENTICATED_MESSAGE = "You are not authenticated or the token is invalid."
ADMIN_REQUIRED_MESSAGE = "Access denied. You do not have the rights required for this action."

_NOT_SELF_MESSAGES: Dict[Action, str] = {
    Action.UPDATE_INFO: "You may only change your own information.",
    Action.CHANGE_PASSWORD: "You may not change another user's password.",
    Action.CHANGE_LOGIN: "You may only change your own login.",
}

_REVOKED_MESSAGES: Dict[Action, str] = {
    Action.UPDATE_INFO: "Cannot change the information of a deleted user.",
    Action.CHANGE_PASSWORD: "Cannot change the password of a deleted user.",
    Action.CHANGE_LOGIN: "Cannot change the login of a deleted user.",
}

_ERRORS = {
    Denial.UNAUTHENTICATED: UnauthenticatedError,
    Denial.FORBIDDEN: ForbiddenError,
    Denial.NOT_FOUND: NotFoundError,
}


@dataclass(frozen=True)
class Decision:
    """Outcome of a policy evaluation."""

    denial: Optional[Denial] = None
    message: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.denial is None

    def to_error(self) -> DirectoryError:
        if self.denial is None:
            raise ValueError("An allowed decision has no error")
        return _ERRORS[self.denial](self.message)

    def enforce(self) -> None:
        """Raise the matching :class:`DirectoryError` unless the decision allows."""

        if self.denial is not None:
            raise self.to_error()


ALLOWED = Decision()


def not_found_message(login: str) -> str:
    return f"User with login '{login}' was not found."


def evaluate(
    caller: Optional[CallerIdentity],
    action: Action,
    target: Optional[UserRecord] = None,
    *,
    login: Optional[str] = None,
) -> Decision:
    """Decide whether ``caller`` may perform ``action`` on ``target``.

    ``login`` names the requested target and is only used for the not-found
    message; it defaults to the caller's login for self reads.
    """

    if caller is None:
        return Decision(Denial.UNAUTHENTICATED, UNAUTHENTICATED_MESSAGE)

    if action in ADMIN_ONLY and not caller.admin:
        return Decision(Denial.FORBIDDEN, ADMIN_REQUIRED_MESSAGE)

    if action not in TARGETED:
        return ALLOWED

    if target is None:
        requested = login if login is not None else caller.login
        return Decision(Denial.NOT_FOUND, not_found_message(requested))

    is_self = caller.login == target.login

    if action is Action.DELETE and is_self:
        return Decision(Denial.FORBIDDEN)

    if action is Action.READ_SELF:
        return ALLOWED if target.is_active else Decision(Denial.FORBIDDEN)

    if caller.admin:
        return ALLOWED

    if not is_self:
        return Decision(Denial.FORBIDDEN, _NOT_SELF_MESSAGES.get(action))

    if not target.is_active:
        return Decision(Denial.FORBIDDEN, _REVOKED_MESSAGES.get(action))

    return ALLOWED


__all__ = [
    "ADMIN_ONLY",
    "ADMIN_REQUIRED_MESSAGE",
    "ALLOWED",
    "Action",
    "Decision",
    "Denial",
    "UNAUTHENTICATED_MESSAGE",
    "evaluate",
    "not_found_message",
]
