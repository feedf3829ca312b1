"""Caller identity passed explicitly into every service call.

Copyright (c) Bryn Gwalad 2025
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from sqlmodel import Session, select

from .exceptions import AuthenticationError
from .models import Role, User


@dataclass(frozen=True)
class Identity:
    """The authenticated caller: who they are, their role and category scope.

    ``category_id`` of ``None`` means the caller is not restricted to a
    category.
    """

    user_id: str
    role: Role
    category_id: Optional[int] = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_scoped(self) -> bool:
        return not self.is_admin and self.category_id is not None


def resolve_identity(session: Session, username: str, admin_users: Iterable[str] = ()) -> Identity:
    """Build an Identity for ``username``.

    Users stored in the database win. Names in ``admin_users`` resolve to an
    unscoped admin even without a row so an empty database can be set up.
    """
    username = (username or "").strip()
    if not username:
        raise AuthenticationError("X-User-Id header is required")

    user = session.exec(select(User).where(User.username == username)).first()
    if user is not None:
        return Identity(user_id=user.username, role=Role(user.role), category_id=user.category_id)
    if username in set(admin_users):
        return Identity(user_id=username, role=Role.ADMIN)
    raise AuthenticationError(f"Unknown user '{username}'")
