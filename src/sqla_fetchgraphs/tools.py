from __future__ import annotations

from collections.abc import Sequence
from functools import lru_cache
from typing import Any, TypeVar

import sqlalchemy as sa
from sqlalchemy import orm

from .exceptions import IncorrectResultSizeError


T = TypeVar("T", bound=orm.DeclarativeBase)
_R = TypeVar("_R")


def unique_scalars(result: sa.Result[tuple[_R]]) -> Sequence[_R]:
    """Shorthand for ``result.unique().scalars().all()``.

    A fetch join repeats the root row once per child row; ``unique()`` folds
    them back to one entity per identity.
    """
    return result.unique().scalars().all()


def single_result(results: Sequence[_R]) -> _R | None:
    """Return the single element of *results*, or ``None`` when it is empty.

    Several references to the *same* object count as one result, so a list
    that was not uniqued still works.

    Raises:
        IncorrectResultSizeError: If *results* holds more than one distinct object.
    """
    if not results:
        return None

    first = results[0]
    if any(item is not first for item in results[1:]):
        distinct = len({id(item) for item in results})
        raise IncorrectResultSizeError(expected=1, actual=distinct)

    return first


@lru_cache
def _get_primary_key(model: type[T]) -> sa.ColumnElement[Any]:
    """Return the first primary-key column element for *model* (cached)."""
    return next(iter(model.__table__.primary_key))


@lru_cache
def _get_table_name(model: type[T]) -> str:
    """Return the table name for *model*, preferring ``__tablename__`` (cached)."""
    result = getattr(
        model,
        "__tablename__",
        model.__table__.description,
    )
    if not result:
        raise ValueError(f"Cannot determine tablename for {model}")

    return result


def get_table_name(model: type[T]) -> str:
    """Get the table name for a SQLAlchemy model.

    Raises:
        ValueError: If the table name cannot be determined.
    """
    return _get_table_name(model)


def get_primary_key(model: type[T]) -> sa.ColumnElement[Any]:
    """Get the (first) primary key column for a SQLAlchemy model."""
    return _get_primary_key(model)
