from __future__ import annotations

from datetime import datetime, timezone

import pytest

from userdir.errors import ForbiddenError, NotFoundError, UnauthenticatedError
from userdir.models import CallerIdentity, UserRecord
from userdir.policy import (
    ADMIN_REQUIRED_MESSAGE,
    Action,
    Denial,
    evaluate,
)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

ADMIN = CallerIdentity(login="root", admin=True)
BOB = CallerIdentity(login="bob", admin=False)

MUTATING = (Action.UPDATE_INFO, Action.CHANGE_PASSWORD, Action.CHANGE_LOGIN)


def _record(login: str, *, revoked: bool = False, admin: bool = False) -> UserRecord:
    record = UserRecord(login=login, password="pass", name="Name", admin=admin)
    if revoked:
        record.revoke("root", NOW)
    return record


@pytest.mark.parametrize("action", list(Action))
def test_missing_caller_is_unauthenticated(action: Action) -> None:
    decision = evaluate(None, action, _record("bob"), login="bob")

    assert decision.denial is Denial.UNAUTHENTICATED
    with pytest.raises(UnauthenticatedError):
        decision.enforce()


@pytest.mark.parametrize("action", [Action.CREATE, Action.DELETE, Action.RESTORE, Action.LIST])
def test_admin_only_actions_forbid_regular_users(action: Action) -> None:
    decision = evaluate(BOB, action, _record("carol"), login="carol")

    assert decision.denial is Denial.FORBIDDEN
    assert decision.message == ADMIN_REQUIRED_MESSAGE


def test_missing_target_is_not_found_with_login_in_message() -> None:
    decision = evaluate(ADMIN, Action.UPDATE_INFO, None, login="ghost")

    assert decision.denial is Denial.NOT_FOUND
    assert "ghost" in (decision.message or "")
    with pytest.raises(NotFoundError):
        decision.enforce()


@pytest.mark.parametrize("action", list(MUTATING) + [Action.RESTORE])
def test_admin_may_act_on_any_record_in_any_state(action: Action) -> None:
    assert evaluate(ADMIN, action, _record("carol"), login="carol").allowed
    assert evaluate(ADMIN, action, _record("carol", revoked=True), login="carol").allowed
    assert evaluate(ADMIN, action, _record("root", admin=True), login="root").allowed


def test_admin_may_delete_others() -> None:
    assert evaluate(ADMIN, Action.DELETE, _record("carol"), login="carol").allowed


def test_self_delete_is_denied_without_message() -> None:
    decision = evaluate(ADMIN, Action.DELETE, _record("root", admin=True), login="root")

    assert decision.denial is Denial.FORBIDDEN
    assert decision.message is None
    with pytest.raises(ForbiddenError):
        decision.enforce()


@pytest.mark.parametrize("action", MUTATING)
def test_regular_user_may_not_touch_other_records(action: Action) -> None:
    decision = evaluate(BOB, action, _record("carol"), login="carol")

    assert decision.denial is Denial.FORBIDDEN
    assert decision.message


@pytest.mark.parametrize("action", MUTATING)
def test_regular_user_may_not_touch_own_revoked_record(action: Action) -> None:
    decision = evaluate(BOB, action, _record("bob", revoked=True), login="bob")

    assert decision.denial is Denial.FORBIDDEN
    assert "deleted" in (decision.message or "")


def test_other_user_check_precedes_revoked_check() -> None:
    decision = evaluate(BOB, Action.UPDATE_INFO, _record("carol", revoked=True), login="carol")

    assert decision.message == "You may only change your own information."


@pytest.mark.parametrize("action", MUTATING)
def test_regular_user_may_act_on_own_active_record(action: Action) -> None:
    assert evaluate(BOB, action, _record("bob"), login="bob").allowed


def test_read_self_requires_active_record_even_for_admins() -> None:
    assert evaluate(BOB, Action.READ_SELF, _record("bob")).allowed

    for caller in (BOB, CallerIdentity(login="bob", admin=True)):
        decision = evaluate(caller, Action.READ_SELF, _record("bob", revoked=True))
        assert decision.denial is Denial.FORBIDDEN
        assert decision.message is None


def test_read_self_without_record_is_not_found() -> None:
    decision = evaluate(BOB, Action.READ_SELF, None)

    assert decision.denial is Denial.NOT_FOUND
    assert "bob" in (decision.message or "")


def test_listing_is_allowed_for_admins() -> None:
    assert evaluate(ADMIN, Action.LIST).allowed
    assert evaluate(ADMIN, Action.CREATE).allowed


def test_allowed_decision_has_no_error() -> None:
    decision = evaluate(ADMIN, Action.LIST)

    decision.enforce()
    with pytest.raises(ValueError):
        decision.to_error()
