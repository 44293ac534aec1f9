# chatrelay/interactors/common.py
from collections.abc import Awaitable
from typing import TypeVar

from sqlalchemy.exc import SQLAlchemyError

from chatrelay.domain.exceptions import Unavailable

T = TypeVar("T")


async def storage_call(operation: Awaitable[T]) -> T:
    """Await a gateway call, reporting storage failures as ``Unavailable``."""
    try:
        return await operation
    except SQLAlchemyError as e:
        raise Unavailable("Storage is temporarily unavailable") from e
