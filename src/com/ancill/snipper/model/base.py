import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator

from sqlalchemy import String, orm
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from typing_extensions import Annotated

from com.ancill.snipper.errors import StoreError

str100 = Annotated[str, 100]
str255 = Annotated[str, 255]


class Base(orm.DeclarativeBase):
    type_annotation_map = {
        str100: String(100),
        str255: String(255),
    }


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@asynccontextmanager
async def store_operation(name: str, timeout: float) -> AsyncIterator[None]:
    """Bound a database round trip and translate driver failures into StoreError.

    Errors the caller wants to handle itself (for example IntegrityError on a
    unique index) must be caught inside the block.
    """
    try:
        async with asyncio.timeout(timeout):
            yield
    except TimeoutError as e:
        raise StoreError(f"{name} timed out after {timeout}s", transient=True) from e
    except SQLAlchemyError as e:
        transient = isinstance(e, DBAPIError) and e.connection_invalidated
        raise StoreError(f"{name} failed: {type(e).__name__}", transient=transient) from e
