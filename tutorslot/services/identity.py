from __future__ import annotations

from typing import Optional, Protocol

from pydantic import BaseModel, ConfigDict
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tutorslot.storage.models import User


class UserRef(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    display_name: str
    role: str
    contact: Optional[str] = None


class IdentityLookup(Protocol):
    async def resolve_user(self, user_id: int) -> UserRef | None: ...


class DatabaseIdentityLookup:
    """Resolves accounts from the ``users`` table."""

    def __init__(self, sessions: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = sessions

    async def resolve_user(self, user_id: int) -> UserRef | None:
        async with self._sessions() as session:
            user = await session.scalar(select(User).where(User.id == user_id))
        return UserRef.model_validate(user) if user is not None else None


async def ensure_user(
    session: AsyncSession,
    display_name: str,
    role: str = "student",
    contact: str | None = None,
) -> User:
    normalized_name = (display_name or "").strip()
    user = await session.scalar(
        select(User).where(User.display_name == normalized_name, User.role == role)
    )
    if user is None:
        user = User(display_name=normalized_name, role=role, contact=contact)
        session.add(user)
        await session.flush()
    elif contact is not None and user.contact != contact:
        user.contact = contact
        await session.flush()
    return user
