"""User accounts and credential verification.

Passwords are hashed with bcrypt and only ever checked through
``UserRepository.verify`` and ``UserRepository.update_password``.
"""

import asyncio
from datetime import datetime
from functools import lru_cache
import logging
from typing import Callable, Optional

import bcrypt
from sqlalchemy import DateTime, Index, Integer, String, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Mapped, mapped_column

from com.ancill.snipper.errors import AuthError, DuplicateEmailError, NotFoundError
from com.ancill.snipper.model.base import Base, str255, store_operation, utc_now

logger = logging.getLogger(__name__)

BCRYPT_MAX_PASSWORD_BYTES = 72
BCRYPT_COST = 12


class User(Base):
    """A registered account. Email addresses are unique."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str255]
    email: Mapped[str255]
    hashed_password: Mapped[str] = mapped_column(String(60), nullable=False)
    created: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("idx_users_email", "email", unique=True),)


def hash_password(password: str, rounds: int = BCRYPT_COST) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds)).decode("utf-8")


def check_password(password: str, hashed_password: str) -> bool:
    encoded = password.encode("utf-8")
    if len(encoded) > BCRYPT_MAX_PASSWORD_BYTES:
        return False
    return bcrypt.checkpw(encoded, hashed_password.encode("utf-8"))


@lru_cache(maxsize=None)
def _dummy_hash(rounds: int) -> str:
    # Checked against when the email is unknown so both failure paths cost one bcrypt round.
    return hash_password("snipper-dummy-password", rounds)


class UserRepository:
    """
    Account storage and the credential verifier.

    Args:
        database_session_maker: Factory for async database sessions
        timeout: Upper bound in seconds for each database round trip
        bcrypt_rounds: bcrypt cost factor for new hashes
        clock: Returns the current UTC time, replaceable in tests
    """

    def __init__(
        self,
        database_session_maker: async_sessionmaker[AsyncSession],
        timeout: float = 5.0,
        bcrypt_rounds: int = BCRYPT_COST,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.database_session_maker = database_session_maker
        self.timeout = timeout
        self.bcrypt_rounds = bcrypt_rounds
        self.clock = clock

    async def insert(self, name: str, email: str, password: str) -> int:
        """
        Create a user and return the new id.

        Raises:
            DuplicateEmailError: If the email address is already registered
            StoreError: If the database fails or times out
        """
        hashed_password = await asyncio.to_thread(
            hash_password, password, self.bcrypt_rounds
        )
        user = User(
            name=name,
            email=email,
            hashed_password=hashed_password,
            created=self.clock(),
        )

        async with store_operation("users.insert", self.timeout):
            try:
                async with self.database_session_maker() as database_session:
                    async with database_session.begin():
                        database_session.add(user)
                        await database_session.flush()
                        user_id = user.id
            except IntegrityError as e:
                raise DuplicateEmailError(f"email {email!r} already registered") from e

        logger.info("created user %d", user_id)
        return user_id

    async def verify(self, email: str, password: str) -> Optional[int]:
        """
        Return the user id when the email and password match, otherwise None.

        An unknown email and a wrong password are indistinguishable to the
        caller, in the result and in the time taken.

        Raises:
            StoreError: If the database fails or times out
        """
        stmt = select(User.id, User.hashed_password).where(User.email == email)
        async with store_operation("users.verify", self.timeout):
            async with self.database_session_maker() as database_session:
                row = (await database_session.execute(stmt)).first()

        if row is None:
            await asyncio.to_thread(
                check_password, password, _dummy_hash(self.bcrypt_rounds)
            )
            return None

        user_id, hashed_password = row
        if await asyncio.to_thread(check_password, password, hashed_password):
            return user_id
        return None

    async def exists(self, user_id: int) -> bool:
        stmt = select(User.id).where(User.id == user_id)
        async with store_operation("users.exists", self.timeout):
            async with self.database_session_maker() as database_session:
                return (await database_session.scalars(stmt)).first() is not None

    async def get(self, user_id: int) -> User:
        """
        Raises:
            NotFoundError: If no user has this id
        """
        stmt = select(User).where(User.id == user_id)
        async with store_operation("users.get", self.timeout):
            async with self.database_session_maker() as database_session:
                user = (await database_session.scalars(stmt)).first()

        if user is None:
            raise NotFoundError(f"user {user_id} not found")
        return user

    async def update_password(
        self, user_id: int, current_password: str, new_password: str
    ) -> None:
        """
        Replace the password after checking the current one.

        Raises:
            AuthError: If current_password does not match
            NotFoundError: If no user has this id
        """
        user = await self.get(user_id)
        if not await asyncio.to_thread(
            check_password, current_password, user.hashed_password
        ):
            raise AuthError.invalid_credentials()

        hashed_password = await asyncio.to_thread(
            hash_password, new_password, self.bcrypt_rounds
        )
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(hashed_password=hashed_password)
        )
        async with store_operation("users.update_password", self.timeout):
            async with self.database_session_maker() as database_session:
                async with database_session.begin():
                    await database_session.execute(stmt)

        logger.info("updated password for user %d", user_id)
