"""Unit tests for auth/roles.py -- role catalog and assignments.

Covers:
- create() and duplicate names (DuplicateNameError)
- ensure_roles() is idempotent
- assign() with unknown user/role ids raises ConstraintViolationError
- assign() of an existing pair is a no-op
- roles_of(): [] for a user without roles, NotFoundError for an unknown user
"""

import pytest

from auth.errors import ConstraintViolationError, DuplicateNameError, NotFoundError
from auth.models import User
from auth.roles import RoleStore
from auth.store import UserStore, create_auth_engine


@pytest.fixture
def stores():
    engine = create_auth_engine("sqlite:///:memory:")
    yield UserStore(engine), RoleStore(engine)
    engine.dispose()


def _add_user(users: UserStore, name: str = "alice") -> int:
    return users.create_user(User(username=name, email=f"{name}@example.com", hashed_password="x"))


def test_create_role(stores):
    _, roles = stores
    role = roles.create("auditor", "Read-only access")
    assert role.id is not None
    assert roles.get_by_name("auditor").description == "Read-only access"
    assert roles.get_by_id(role.id).name == "auditor"


def test_duplicate_role_name(stores):
    _, roles = stores
    roles.create("auditor")
    with pytest.raises(DuplicateNameError):
        roles.create("auditor")


def test_ensure_roles_is_idempotent(stores):
    _, roles = stores
    first = roles.ensure_roles(["user", "admin"])
    second = roles.ensure_roles(["admin", "user"])
    assert {r.id for r in first} == {r.id for r in second}
    assert [r.name for r in roles.list_roles()] == ["user", "admin"]


def test_assign_and_read_roles(stores):
    users, roles = stores
    uid = _add_user(users)
    user_role, admin_role = roles.ensure_roles(["user", "admin"])
    roles.assign(uid, user_role.id)
    roles.assign(uid, admin_role.id)
    assert roles.roles_of(uid) == ["user", "admin"]


def test_assign_twice_is_noop(stores):
    users, roles = stores
    uid = _add_user(users)
    role = roles.create("user")
    roles.assign(uid, role.id)
    roles.assign(uid, role.id)
    assert roles.roles_of(uid) == ["user"]


def test_assign_unknown_role(stores):
    users, roles = stores
    uid = _add_user(users)
    with pytest.raises(ConstraintViolationError):
        roles.assign(uid, 999)


def test_assign_unknown_user(stores):
    _, roles = stores
    role = roles.create("user")
    with pytest.raises(ConstraintViolationError):
        roles.assign(999, role.id)


def test_roles_of_user_without_roles(stores):
    users, roles = stores
    uid = _add_user(users)
    assert roles.roles_of(uid) == []


def test_roles_of_unknown_user(stores):
    _, roles = stores
    with pytest.raises(NotFoundError):
        roles.roles_of(12345)
