"""Category and user management (admin only for every write).

Copyright (c) Bryn Gwalad 2025
"""

import logging
from typing import List

from sqlalchemy import func
from sqlmodel import Session, select
from werkzeug.security import check_password_hash, generate_password_hash

from .access import ensure_admin
from .database import atomic
from .exceptions import ConflictError, NotFound, ValidationError
from .identity import Identity
from .models import Category, CategoryCreate, Item, Role, User, UserCreate

logger = logging.getLogger("warehouse_api.admin")


def _get_category(session: Session, category_id: int) -> Category:
    category = session.get(Category, category_id)
    if category is None:
        raise NotFound(f"Category {category_id} not found", category_id=category_id)
    return category


def _check_category_name(session: Session, name: str, exclude_id=None) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError("category name is required", field="name")
    statement = select(Category).where(Category.name == name)
    if exclude_id is not None:
        statement = statement.where(Category.id != exclude_id)
    if session.exec(statement).first() is not None:
        raise ConflictError(f"Category '{name}' already exists", name=name)
    return name


def create_category(session: Session, identity: Identity, data: CategoryCreate) -> Category:
    ensure_admin(identity, "manage categories")
    with atomic(session):
        category = Category(
            name=_check_category_name(session, data.name),
            description=data.description,
        )
        session.add(category)
    session.refresh(category)
    logger.info("Category %s '%s' created by %s", category.id, category.name, identity.user_id)
    return category


def list_categories(session: Session) -> List[Category]:
    return list(session.exec(select(Category).order_by(Category.name)).all())


def update_category(session: Session, identity: Identity, category_id: int, data: CategoryCreate) -> Category:
    ensure_admin(identity, "manage categories")
    with atomic(session):
        category = _get_category(session, category_id)
        category.name = _check_category_name(session, data.name, exclude_id=category_id)
        category.description = data.description
        session.add(category)
    session.refresh(category)
    return category


def delete_category(session: Session, identity: Identity, category_id: int) -> None:
    """Delete a category nothing refers to any more."""
    ensure_admin(identity, "manage categories")
    with atomic(session):
        category = _get_category(session, category_id)
        items = session.exec(select(func.count(Item.id)).where(Item.category_id == category_id)).one()
        users = session.exec(select(func.count(User.id)).where(User.category_id == category_id)).one()
        if items or users:
            raise ConflictError(
                f"Category '{category.name}' is still used by {items} items and {users} users",
                category_id=category_id,
                items=items,
                users=users,
            )
        session.delete(category)
    logger.info("Category %s deleted by %s", category_id, identity.user_id)


def create_user(session: Session, identity: Identity, data: UserCreate) -> User:
    ensure_admin(identity, "manage users")
    username = (data.username or "").strip()
    if not username:
        raise ValidationError("username is required", field="username")
    if not data.password:
        raise ValidationError("password is required", field="password")
    try:
        role = Role(data.role)
    except ValueError:
        raise ValidationError(f"invalid role '{data.role}'", field="role") from None

    with atomic(session):
        if session.exec(select(User).where(User.username == username)).first() is not None:
            raise ConflictError(f"User '{username}' already exists", username=username)
        if data.category_id is not None:
            _get_category(session, data.category_id)
        user = User(
            username=username,
            password_hash=generate_password_hash(data.password),
            role=role.value,
            category_id=data.category_id,
        )
        session.add(user)
    session.refresh(user)
    logger.info("User '%s' (%s) created by %s", user.username, user.role, identity.user_id)
    return user


def list_users(session: Session, identity: Identity) -> List[User]:
    ensure_admin(identity, "list users")
    return list(session.exec(select(User).order_by(User.username)).all())


def delete_user(session: Session, identity: Identity, user_id: int) -> None:
    ensure_admin(identity, "manage users")
    with atomic(session):
        user = session.get(User, user_id)
        if user is None:
            raise NotFound(f"User {user_id} not found", user_id=user_id)
        session.delete(user)
    logger.info("User %s deleted by %s", user_id, identity.user_id)


def verify_password(user: User, password: str) -> bool:
    """Check a login password against the stored hash.

    This service resolves callers from the ``X-User-Id`` header only; a login
    front end that exchanges passwords for that header calls this.
    """
    return check_password_hash(user.password_hash, password)
