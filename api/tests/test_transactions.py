"""Test the transaction runner: commit, rollback, deadlines and error wrapping."""

import pytest
from sqlalchemy import func, insert, select
from sqlalchemy.exc import IntegrityError, OperationalError

from brewd import models
from brewd.errors import InvariantViolation, StoreError, Timeout, TransientStoreError
from brewd.transactions import Deadline, run_in_transaction, wrap_store_error


class FakeDriverError(Exception):
    def __init__(self, sqlstate: str) -> None:
        super().__init__(f"driver error {sqlstate}")
        self.sqlstate = sqlstate


def user_count(db) -> int:
    total = db.scalar(select(func.count(models.User.id)))
    db.commit()
    return total


def add_user(name: str):
    def work(session):
        session.execute(insert(models.User).values(username=name))
        return name

    return work


def test_commits_work(db):
    assert run_in_transaction(db, "add_user", "ann", add_user("ann")) == "ann"
    assert user_count(db) == 1


def test_service_error_rolls_back(db):
    def work(session):
        add_user("ann")(session)
        raise InvariantViolation("broken", operation="test", key="ann")

    with pytest.raises(InvariantViolation):
        run_in_transaction(db, "add_user", "ann", work)
    assert user_count(db) == 0


def test_expired_deadline_fails_before_commit(db):
    expired = Deadline.after(-1)

    with pytest.raises(Timeout) as exc_info:
        run_in_transaction(db, "add_user", "ann", add_user("ann"), deadline=expired)

    assert exc_info.value.operation == "add_user"
    assert user_count(db) == 0


def test_deadline_expiring_during_work_rolls_back(db, monkeypatch):
    deadline = Deadline.after(60)

    def slow_work(session):
        add_user("ann")(session)
        # Simulate the clock passing the deadline mid-transaction
        monkeypatch.setattr(Deadline, "expired", property(lambda self: True))
        return "ann"

    with pytest.raises(Timeout):
        run_in_transaction(db, "add_user", "ann", slow_work, deadline=deadline)
    monkeypatch.undo()
    assert user_count(db) == 0


def test_integrity_error_is_wrapped_with_operation_and_key(db):
    run_in_transaction(db, "add_user", "ann", add_user("ann"))

    with pytest.raises(StoreError) as exc_info:
        run_in_transaction(db, "add_user", "ann", add_user("ann"))

    assert not isinstance(exc_info.value, TransientStoreError)
    assert exc_info.value.operation == "add_user"
    assert exc_info.value.key == "ann"
    assert isinstance(exc_info.value.__cause__, IntegrityError)
    assert user_count(db) == 1


def test_transient_errors_are_retried(db):
    attempts = []

    def flaky(session):
        attempts.append(1)
        if len(attempts) < 3:
            raise OperationalError("INSERT ...", {}, FakeDriverError("40001"))
        return add_user("ann")(session)

    assert run_in_transaction(db, "add_user", "ann", flaky, retries=3) == "ann"
    assert len(attempts) == 3
    assert user_count(db) == 1


def test_transient_error_surfaces_after_retries(db):
    def always_fails(session):
        raise OperationalError("INSERT ...", {}, FakeDriverError("40P01"))

    with pytest.raises(TransientStoreError) as exc_info:
        run_in_transaction(db, "add_user", "ann", always_fails, retries=2)
    assert exc_info.value.http_status == 503


def test_query_canceled_maps_to_timeout():
    exc = OperationalError("SELECT ...", {}, FakeDriverError("57014"))
    assert isinstance(wrap_store_error(exc, "friend_feed", "u1"), Timeout)


def test_deadline_remaining():
    assert Deadline.after(10).remaining() > 9
    assert Deadline.after(-1).expired
