"""Snippet data model and repository.

Snippets are never updated after insertion. A snippet whose expiry has passed
is treated as deleted by every read, even while its row still exists; the
cleanup task removes such rows eventually.
"""

from datetime import datetime, timedelta
import logging
from typing import Callable, List

from sqlalchemy import DateTime, Index, Integer, Text, delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Mapped, mapped_column

from com.ancill.snipper.errors import NotFoundError, ValidationError
from com.ancill.snipper.model.base import Base, str100, store_operation, utc_now

logger = logging.getLogger(__name__)

DEFAULT_LATEST_LIMIT = 10


class Snippet(Base):
    """A stored text note with creation and expiry timestamps."""

    __tablename__ = "snippets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str100]
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("idx_snippets_expires", "expires"),)


class SnippetRepository:
    """
    Expiry-aware access to snippet records.

    Every operation is a single round trip against the database bounded by
    ``timeout`` seconds. Nothing is cached: a cached snippet could outlive its
    expiry for concurrent readers.

    Args:
        database_session_maker: Factory for async database sessions
        timeout: Upper bound in seconds for each database round trip
        clock: Returns the current UTC time, replaceable in tests
    """

    def __init__(
        self,
        database_session_maker: async_sessionmaker[AsyncSession],
        timeout: float = 5.0,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.database_session_maker = database_session_maker
        self.timeout = timeout
        self.clock = clock

    async def insert(self, title: str, content: str, retention_days: int) -> int:
        """
        Store a new snippet and return its id.

        The expiry is computed here from the current time, never taken from
        the client.

        Raises:
            ValidationError: If retention_days is not a positive integer
            StoreError: If the database fails or times out
        """
        if (
            isinstance(retention_days, bool)
            or not isinstance(retention_days, int)
            or retention_days <= 0
        ):
            raise ValidationError(
                "retention period must be a positive number of days",
                {"expires": "This field must be a positive number of days"},
            )

        created = self.clock()
        snippet = Snippet(
            title=title,
            content=content,
            created=created,
            expires=created + timedelta(days=retention_days),
        )

        async with store_operation("snippets.insert", self.timeout):
            async with self.database_session_maker() as database_session:
                async with database_session.begin():
                    database_session.add(snippet)
                    await database_session.flush()
                    snippet_id = snippet.id

        logger.debug("inserted snippet %d expiring %s", snippet_id, snippet.expires)
        return snippet_id

    async def get(self, snippet_id: int) -> Snippet:
        """
        Return a single snippet.

        Raises:
            NotFoundError: If no snippet has this id or it has expired
            StoreError: If the database fails or times out
        """
        stmt = select(Snippet).where(
            Snippet.id == snippet_id, Snippet.expires > self.clock()
        )
        async with store_operation("snippets.get", self.timeout):
            async with self.database_session_maker() as database_session:
                snippet = (await database_session.scalars(stmt)).first()

        if snippet is None:
            raise NotFoundError(f"snippet {snippet_id} not found")
        return snippet

    async def latest(self, limit: int = DEFAULT_LATEST_LIMIT) -> List[Snippet]:
        """Return up to ``limit`` unexpired snippets, most recently inserted first."""
        if limit <= 0:
            return []

        stmt = (
            select(Snippet)
            .where(Snippet.expires > self.clock())
            .order_by(Snippet.id.desc())
            .limit(limit)
        )
        async with store_operation("snippets.latest", self.timeout):
            async with self.database_session_maker() as database_session:
                return list((await database_session.scalars(stmt)).all())

    async def delete_expired(self) -> int:
        """Physically remove expired snippets and return how many were removed."""
        stmt = delete(Snippet).where(Snippet.expires <= self.clock())
        async with store_operation("snippets.delete_expired", self.timeout):
            async with self.database_session_maker() as database_session:
                async with database_session.begin():
                    result = await database_session.execute(stmt)
        return result.rowcount or 0
