"""Username lookups and credential checks."""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..db_models import User
from ..errors import InvalidCredentials, UsernameTaken, UserNotFound

logger = logging.getLogger(__name__)


async def find_user(session: AsyncSession, username: str) -> User | None:
    """Return the user with exactly ``username`` (case-sensitive), if any."""

    result = await session.execute(select(User).where(User.username == username))
    return result.scalar_one_or_none()


async def find_user_key(session: AsyncSession, username: str | None) -> str | None:
    if not username:
        return None
    user = await find_user(session, username)
    return user.user_id if user is not None else None


async def resolve_user_key(session: AsyncSession, username: str) -> str:
    """Return the internal key for ``username`` or raise ``UserNotFound``."""

    user_key = await find_user_key(session, username)
    if user_key is None:
        raise UserNotFound()
    return user_key


async def authenticate(session: AsyncSession, username: str, password: str) -> User:
    user = await find_user(session, username)
    # Plain comparison: credentials are stored as given at registration.
    if user is None or user.password != password:
        raise InvalidCredentials()
    return user


async def create_user(session: AsyncSession, username: str, password: str) -> User:
    """Register a new account with a freshly generated internal key."""

    user = User(user_id=uuid.uuid4().hex, username=username, password=password)
    session.add(user)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise UsernameTaken() from exc
    logger.info("Registered user %s", username)
    return user
