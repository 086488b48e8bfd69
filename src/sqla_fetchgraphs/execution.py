from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any, Final, Literal, TypeVar

import sqlalchemy as sa
from sqlalchemy import orm
from sqlalchemy.ext.asyncio import AsyncSession

from .core import DEFAULT_MANY_LOAD, ID_PARAM, fetch_join_select, graph_options
from .datastructures import frozendict
from .graph import FETCH_GRAPH, HINT_SEMANTICS, LOAD_GRAPH, EntityGraph
from .metamodel import Metamodel
from .tools import single_result, unique_scalars


logger = logging.getLogger(__name__)

T = TypeVar("T", bound=orm.DeclarativeBase)

FetchStrategy = Literal["criteria", "fetchgraph", "loadgraph"]

_STRATEGY_HINTS: Final[Mapping[str, str]] = frozendict({
    "fetchgraph": FETCH_GRAPH,
    "loadgraph": LOAD_GRAPH,
})


async def find(
    session: AsyncSession,
    model: type[T],
    ident: Any,
    hints: Mapping[str, Any] | None = None,
    *,
    many_load: str = DEFAULT_MANY_LOAD,
) -> T | None:
    """Look *model* up by primary key, honouring entity-graph hints.

    *hints* may carry an ``EntityGraph`` under ``FETCH_GRAPH`` or
    ``LOAD_GRAPH`` (not both). Without a graph this is a plain
    ``session.get``. With one, the graph's associations are loaded in the same
    call and already-present identities are refreshed so the graph is applied.

    Returns:
        The entity, or ``None`` when no row has that identity.

    Raises:
        ValueError: If both graph hints are given, or the graph is rooted at
            another entity.
    """
    graphs = {
        semantics: graph
        for hint, semantics in HINT_SEMANTICS.items()
        if (graph := (hints or {}).get(hint)) is not None
    }
    if len(graphs) > 1:
        raise ValueError("fetchgraph and loadgraph hints are mutually exclusive")

    options: tuple[Any, ...] = ()
    for semantics, graph in graphs.items():
        if graph.model is not model:
            raise ValueError(
                f"Entity graph is rooted at {graph.model.__name__}, not {model.__name__}"
            )
        options = graph_options(
            model,
            graph.paths(),
            metamodel=graph.metamodel,
            semantics=semantics,
            many_load=many_load,
        )
        logger.debug("%s graph for %s %r: %r", semantics, model.__name__, ident, graph)

    entity = await session.get(model, ident, options=options, populate_existing=bool(options))
    if entity is None:
        logger.info("%s with id %r not found", model.__name__, ident)

    return entity


async def execute_single(
    session: AsyncSession,
    statement: sa.Select[tuple[T]],
    params: Mapping[str, Any] | None = None,
) -> T | None:
    """Execute *statement*, unique the rows and return at most one entity.

    Raises:
        IncorrectResultSizeError: If more than one distinct entity matched.
    """
    result = await session.execute(statement, params)
    entity = single_result(unique_scalars(result))
    if entity is None:
        logger.info("No row matched %r", params)

    return entity


async def fetch_one(
    session: AsyncSession,
    model: type[T],
    ident: Any,
    loads: Iterable[str] = (),
    *,
    strategy: FetchStrategy = "criteria",
    metamodel: Metamodel | None = None,
    many_load: str = DEFAULT_MANY_LOAD,
) -> T | None:
    """Load one *model* by id with the association paths in *loads* populated.

    ``strategy`` selects how:

    * ``"criteria"`` - a single fetch-join statement (``fetch_join_select``);
    * ``"fetchgraph"`` - a dynamic entity graph used as a fetch graph;
    * ``"loadgraph"`` - a dynamic entity graph used as a load graph.

    ``many_load`` picks the collection loader of the graph strategies and is
    ignored by ``"criteria"``.

    Every strategy returns an equivalent graph, or ``None`` when the id does
    not exist.

    Example::

        company = await fetch_one(session, Company, 1, ("departments.employees", "cars"))
    """
    metamodel = metamodel or Metamodel()
    loads = tuple(loads)
    logger.debug("Fetching %s %r with %r using %s", model.__name__, ident, loads, strategy)

    match strategy:
        case "criteria":
            statement = fetch_join_select(model, loads, metamodel=metamodel)
            return await execute_single(session, statement, {ID_PARAM: ident})
        case "fetchgraph" | "loadgraph":
            graph = EntityGraph.from_paths(model, loads, metamodel)
            return await find(
                session,
                model,
                ident,
                frozendict({_STRATEGY_HINTS[strategy]: graph}),
                many_load=many_load,
            )
        case _:
            raise ValueError(f"Unknown fetch strategy: {strategy!r}")
