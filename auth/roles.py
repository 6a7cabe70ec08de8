"""
auth/roles.py -- RoleStore: role catalog and user <-> role assignments.

Roles are free-form unique names ("user", "admin", anything an operator
creates), not a closed enum. Authorization compares sets of strings.

Referential integrity is the database's job: user_roles has foreign keys on
both sides with ON DELETE CASCADE. assign() turns the resulting
IntegrityError into ConstraintViolationError.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.errors import ConstraintViolationError, DuplicateNameError, NotFoundError
from auth.models import Role
from auth.store import roles_table, user_roles_table, users_table

logger = logging.getLogger("sessiongate.auth")


class RoleStore:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create(self, name: str, description: str | None = None) -> Role:
        """Insert a role. Raises DuplicateNameError if the name is taken."""
        try:
            with self.engine.begin() as conn:
                result = conn.execute(roles_table.insert().values(name=name, description=description))
        except IntegrityError as exc:
            raise DuplicateNameError(f"Role '{name}' already exists.") from exc
        return Role(id=result.inserted_primary_key[0], name=name, description=description)

    def get_by_id(self, role_id: int) -> Role | None:
        with self.engine.connect() as conn:
            row = conn.execute(roles_table.select().where(roles_table.c.id == role_id)).fetchone()
        return _row_to_role(row) if row is not None else None

    def get_by_name(self, name: str) -> Role | None:
        with self.engine.connect() as conn:
            row = conn.execute(roles_table.select().where(roles_table.c.name == name)).fetchone()
        return _row_to_role(row) if row is not None else None

    def list_roles(self) -> list[Role]:
        with self.engine.connect() as conn:
            rows = conn.execute(roles_table.select().order_by(roles_table.c.id)).fetchall()
        return [_row_to_role(r) for r in rows]

    def ensure_roles(self, names: Iterable[str]) -> list[Role]:
        """Create any missing roles from names. Safe to call on every startup."""
        seeded = []
        for name in names:
            role = self.get_by_name(name)
            if role is None:
                try:
                    role = self.create(name)
                    logger.info("Seeded role %r", name)
                except DuplicateNameError:
                    # Another worker seeded it between the lookup and the insert.
                    role = self.get_by_name(name)
            seeded.append(role)
        return seeded

    def assign(self, user_id: int, role_id: int) -> None:
        """Link a user to a role.

        Raises ConstraintViolationError if either id does not exist.
        Assigning a pair that is already linked is a no-op.
        """
        if self._is_assigned(user_id, role_id):
            return
        try:
            with self.engine.begin() as conn:
                conn.execute(user_roles_table.insert().values(user_id=user_id, role_id=role_id))
        except IntegrityError as exc:
            if self._is_assigned(user_id, role_id):
                return
            raise ConstraintViolationError(detail=f"user_id={user_id} role_id={role_id}") from exc

    def roles_of(self, user_id: int) -> list[str]:
        """Return role names for a user, ordered by role id.

        A user with no roles yields []. A user that does not exist raises
        NotFoundError -- the two cases mean different things to callers.
        """
        query = (
            select(users_table.c.id, roles_table.c.name)
            .select_from(
                users_table.outerjoin(user_roles_table, user_roles_table.c.user_id == users_table.c.id).outerjoin(
                    roles_table, roles_table.c.id == user_roles_table.c.role_id
                )
            )
            .where(users_table.c.id == user_id)
            .order_by(roles_table.c.id)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        if not rows:
            raise NotFoundError()
        return [r.name for r in rows if r.name is not None]

    def _is_assigned(self, user_id: int, role_id: int) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(
                user_roles_table.select().where(
                    (user_roles_table.c.user_id == user_id) & (user_roles_table.c.role_id == role_id)
                )
            ).fetchone()
        return row is not None


def _row_to_role(row) -> Role:
    return Role(id=row.id, name=row.name, description=row.description)
