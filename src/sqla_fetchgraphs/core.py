from __future__ import annotations

import logging
import warnings
from collections.abc import Callable, Iterable, Sequence
from functools import lru_cache
from typing import TYPE_CHECKING, Any, Final, Generic, TypeVar

import sqlalchemy as sa
from sqlalchemy import orm

from .exceptions import UnknownAttributeError
from .graph import GraphSemantics
from .metamodel import Metamodel
from .tools import get_primary_key, get_table_name


if TYPE_CHECKING:
    from sqlalchemy.orm.strategy_options import _AbstractLoad

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=orm.DeclarativeBase)

ID_PARAM: Final[str] = "id"
DEFAULT_DISTINCT: Final[bool] = True
DEFAULT_MANY_LOAD: Final[str] = "selectinload"

_MANY_LOAD_STRATEGIES: Final[dict[str, Callable[..., _AbstractLoad]]] = {
    "subqueryload": orm.subqueryload,
    "selectinload": orm.selectinload,
}


class FetchJoinBuilder(Generic[T]):
    """Builds a SELECT that fetch-joins association paths of *model*.

    Every hop of every requested path becomes one ``LEFT OUTER JOIN`` and one
    link of a ``contains_eager`` chain, so the whole graph arrives in a single
    round trip. A hop shared by several paths (``departments`` in
    ``departments`` and ``departments.employees``) is joined once.

    An entity class reached a second time (``departments.company`` from
    ``Company``) is joined through an alias named after its table and path,
    otherwise its columns would be ambiguous.

    The joins multiply the root row once per child row; callers must unique the
    result (see ``tools.unique_scalars``).
    """

    __slots__ = (
        "_entities",
        "_loaded",
        "_options",
        "_query",
        "_seen_classes",
        "distinct",
        "metamodel",
        "model",
    )

    def __init__(
        self,
        model: type[T],
        metamodel: Metamodel,
        *,
        distinct: bool = DEFAULT_DISTINCT,
    ) -> None:
        if orm.DeclarativeBase in getattr(model, "__bases__", ()) or model is orm.DeclarativeBase:
            raise TypeError("model must not be orm.DeclarativeBase")

        self.model = model
        self.metamodel = metamodel
        self.distinct = distinct
        self._reset()

    def _reset(self, query: sa.Select[tuple[T]] | None = None) -> None:
        self._query: sa.Select[tuple[T]] = sa.select(self.model) if query is None else query
        self._options: list[_AbstractLoad] = []
        self._loaded: dict[str, _AbstractLoad] = {}
        self._entities: dict[str, Any] = {"": self.model}
        self._seen_classes: set[type] = {self.model}

    def build(
        self,
        loads: Iterable[str] = (),
        query: sa.Select[tuple[T]] | None = None,
    ) -> sa.Select[tuple[T]]:
        """Build the SELECT with all requested fetch joins.

        Paths are processed shallowest first so the first occurrence of an
        entity class keeps its plain table name. Each call starts from a clean
        state, so a builder can be reused.

        Args:
            loads: Dotted association paths, e.g. ``("departments.employees",)``.
            query: Optional SELECT to extend instead of ``sa.select(model)``.

        Raises:
            UnknownAttributeError: If a path segment is not a relationship.
        """
        self._reset(query)

        for load_key in sorted(loads, key=lambda x: x.count(".")):
            relationships = resolve_path(self.model, load_key, self.metamodel)
            if (load := self._construct_loads(relationships)) is not None:
                self._options.append(load)

        if self._options:
            self._query = self._query.options(*self._options)

        return self._query.distinct() if self.distinct else self._query

    def _construct_loads(
        self,
        relationships: Sequence[orm.RelationshipProperty[orm.DeclarativeBase]],
    ) -> _AbstractLoad | None:
        load: _AbstractLoad | None = None
        cumulative_path = ""

        for relationship in relationships:
            parent_path = cumulative_path
            cumulative_path = (
                f"{cumulative_path}.{relationship.key}" if cumulative_path else relationship.key
            )
            if cumulative_path in self._loaded:
                load = self._loaded[cumulative_path]
                continue

            relation_cls = relationship.mapper.class_
            attr = getattr(self._entities[parent_path], relationship.key)
            target: Any = relation_cls
            if relation_cls in self._seen_classes:
                name = f"{get_table_name(relation_cls)}_{cumulative_path.replace('.', '_')}"
                target = orm.aliased(relation_cls, name=name)
                attr = attr.of_type(target)

            self._query = self._query.outerjoin(attr)
            load = _construct_strategy(orm.contains_eager, attr, load)

            self._loaded[cumulative_path] = load
            self._entities[cumulative_path] = target
            self._seen_classes.add(relation_cls)

        return load


@lru_cache(maxsize=1028)
def resolve_path(
    model: type[T],
    dotted: str,
    metamodel: Metamodel,
) -> tuple[orm.RelationshipProperty[orm.DeclarativeBase], ...]:
    """Resolve ``'departments.employees'`` into its relationship properties.

    Each segment must be a direct relationship of the entity reached so far.

    Raises:
        UnknownAttributeError: If a segment is not a relationship.
    """
    result: list[orm.RelationshipProperty[orm.DeclarativeBase]] = []
    current_cls: type[orm.DeclarativeBase] = model
    for segment in dotted.split("."):
        rel = next((r for r in metamodel.get(current_cls) if r.key == segment), None)
        if rel is None:
            raise UnknownAttributeError(current_cls, segment, dotted)
        result.append(rel)
        current_cls = rel.mapper.class_

    return tuple(result)


def _construct_strategy(
    strategy: Callable[..., _AbstractLoad],
    attr: Any,
    current: _AbstractLoad | None = None,
    **kw: Any,
) -> _AbstractLoad:
    """Create a top-level loader option, or chain it onto *current*."""
    return (
        strategy(attr, **kw)
        if current is None
        else getattr(current, strategy.__name__)(attr, **kw)
    )


def _many_load_strategy(many_load: str) -> Callable[..., _AbstractLoad]:
    if not (strategy := _MANY_LOAD_STRATEGIES.get(many_load)):
        warnings.warn(
            f"Unknown many_load strategy: {many_load}. Using selectinload.",
            stacklevel=3,
        )
        strategy = orm.selectinload

    return strategy


@lru_cache(maxsize=1028)
def _fetch_join_select(
    model: type[T],
    loads: tuple[str, ...],
    metamodel: Metamodel,
    distinct: bool,  # noqa: FBT001
) -> sa.Select[tuple[T]]:
    builder = FetchJoinBuilder(model, metamodel, distinct=distinct)
    query = builder.build(loads).where(get_primary_key(model) == sa.bindparam(ID_PARAM))
    logger.debug("Built fetch-join select for %s loading %r", model.__name__, loads)

    return query


def fetch_join_select(
    model: type[T],
    loads: Iterable[str] = (),
    *,
    metamodel: Metamodel | None = None,
    distinct: bool = DEFAULT_DISTINCT,
) -> sa.Select[tuple[T]]:
    """Criteria-style statement: one root by ``:id`` with fetch-joined paths.

    Execute it with ``{"id": ident}`` and unique the result::

        query = fetch_join_select(Company, ("departments.employees",))
        result = await session.execute(query, {"id": 1})
        company = single_result(unique_scalars(result))

    The statement is cached per ``(model, loads, distinct)``.
    """
    return _fetch_join_select(model, tuple(loads), metamodel or Metamodel(), distinct)


@lru_cache(maxsize=1028)
def _graph_options(
    model: type[T],
    paths: tuple[str, ...],
    metamodel: Metamodel,
    semantics: GraphSemantics,
    many_load: str,
) -> tuple[_AbstractLoad, ...]:
    loaded: dict[str, _AbstractLoad] = {}
    options: list[_AbstractLoad] = []

    for path in paths:
        load: _AbstractLoad | None = None
        cumulative_path = ""
        for relationship in resolve_path(model, path, metamodel):
            cumulative_path = (
                f"{cumulative_path}.{relationship.key}" if cumulative_path else relationship.key
            )
            if cumulative_path in loaded:
                load = loaded[cumulative_path]
                continue

            strategy = _many_load_strategy(many_load) if relationship.uselist else orm.joinedload
            attr = getattr(relationship.parent.class_, relationship.key)
            load = loaded[cumulative_path] = _construct_strategy(strategy, attr, load)

        if load is not None:
            options.append(load)

    # Wildcard only covers what the graph does not name.
    if semantics == "fetch":
        options.append(orm.lazyload("*"))

    return tuple(options)


def graph_options(
    model: type[T],
    paths: Iterable[str],
    *,
    metamodel: Metamodel | None = None,
    semantics: GraphSemantics = "fetch",
    many_load: str = DEFAULT_MANY_LOAD,
) -> tuple[_AbstractLoad, ...]:
    """Loader options that realise an entity graph given as dotted paths.

    Collections are loaded with *many_load* (``selectinload`` or
    ``subqueryload``), scalar references with ``joinedload``. With
    ``semantics="fetch"`` every relationship of the root outside the graph is
    forced to lazy loading; with ``semantics="load"`` those keep whatever
    strategy the mapping declares.
    """
    return _graph_options(model, tuple(paths), metamodel or Metamodel(), semantics, many_load)


def cache_info() -> dict[str, Any]:
    """Return LRU cache statistics for all internal caches."""
    from .tools import _get_primary_key, _get_table_name

    return {
        fn.__name__: fn.cache_info()
        for fn in (
            resolve_path,
            _fetch_join_select,
            _graph_options,
            _get_primary_key,
            _get_table_name,
        )
    }


def cache_clear() -> None:
    """Clear all internal LRU caches."""
    from .tools import _get_primary_key, _get_table_name

    for fn in (
        resolve_path,
        _fetch_join_select,
        _graph_options,
        _get_primary_key,
        _get_table_name,
    ):
        fn.cache_clear()
