from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any, ClassVar, final

import sqlalchemy as sa
from sqlalchemy import orm

from .datastructures import frozendict
from .exceptions import EntityGraphNotFoundError, NamedQueryNotFoundError, UnknownAttributeError
from .graph import EntityGraph, NamedEntityGraph, NamedQuery


logger = logging.getLogger(__name__)

Relationships = Mapping[
    type[orm.DeclarativeBase], Sequence[orm.RelationshipProperty[orm.DeclarativeBase]]
]


@final
class Metamodel:
    """Singleton registry of entity relationships and named declarations.

    Holds, for every mapped entity of a declarative base:

    * its relationships (used to resolve association paths),
    * the ``NamedQuery`` objects listed in ``__named_queries__``,
    * the ``NamedEntityGraph`` objects listed in ``__named_entity_graphs__``.

    Initialize it once at startup with :func:`init_metamodel`; afterwards
    ``Metamodel()`` returns the same instance everywhere.
    """

    __instance: ClassVar[Metamodel | None] = None
    _relationships: Relationships
    _named_queries: Mapping[str, tuple[type[orm.DeclarativeBase], NamedQuery]]
    _entity_graphs: Mapping[str, tuple[type[orm.DeclarativeBase], NamedEntityGraph]]
    _statements: dict[str, sa.Select[Any]]

    def __new__(cls, base: type[orm.DeclarativeBase] | None = None) -> Metamodel:
        if cls.__instance is None:
            if base is None:
                raise RuntimeError("Metamodel is not initialized or empty")

            instance = super().__new__(cls)
            instance.load(base)
            if not instance.relationships:
                raise RuntimeError("Metamodel is not initialized or empty")

            cls.__instance = instance

        return cls.__instance

    def load(self, base: type[orm.DeclarativeBase]) -> None:
        """(Re)build the registry from the mappers of *base*.

        Raises:
            ValueError: If two entities declare a named query or named entity
                graph with the same name.
        """
        named_queries: dict[str, tuple[type[orm.DeclarativeBase], NamedQuery]] = {}
        entity_graphs: dict[str, tuple[type[orm.DeclarativeBase], NamedEntityGraph]] = {}

        for mapper in base.registry.mappers:
            model = mapper.class_
            for query in model.__dict__.get("__named_queries__", ()):
                if query.name in named_queries:
                    raise ValueError(f"Duplicate named query {query.name!r} on {model.__name__}")
                named_queries[query.name] = (model, query)

            for graph in model.__dict__.get("__named_entity_graphs__", ()):
                if graph.name in entity_graphs:
                    raise ValueError(
                        f"Duplicate named entity graph {graph.name!r} on {model.__name__}"
                    )
                entity_graphs[graph.name] = (model, graph)

        self._relationships = get_relationships(base)
        self._named_queries = frozendict(named_queries)
        self._entity_graphs = frozendict(entity_graphs)
        self._statements = {}
        logger.debug(
            "Metamodel loaded: %d entities, %d named queries, %d named entity graphs",
            len(self._relationships),
            len(self._named_queries),
            len(self._entity_graphs),
        )

    @property
    def relationships(self) -> Relationships:
        """The underlying entity-to-relationships mapping (read-only)."""
        return self._relationships

    def get(
        self, model: type[orm.DeclarativeBase]
    ) -> Sequence[orm.RelationshipProperty[orm.DeclarativeBase]]:
        """Relationships of *model*, or an empty sequence for unknown entities."""
        return self._relationships.get(model, ())

    def __getitem__(
        self, model: type[orm.DeclarativeBase]
    ) -> Sequence[orm.RelationshipProperty[orm.DeclarativeBase]]:
        return self._relationships[model]

    def relationship(
        self, model: type[orm.DeclarativeBase], key: str
    ) -> orm.RelationshipProperty[orm.DeclarativeBase]:
        """Look up relationship *key* of *model*.

        Raises:
            UnknownAttributeError: If *model* has no relationship named *key*.
        """
        rel = next((r for r in self.get(model) if r.key == key), None)
        if rel is None:
            raise UnknownAttributeError(model, key)

        return rel

    def named_query(self, name: str) -> sa.Select[Any]:
        """Return the statement registered as *name*, building it on first use.

        Raises:
            NamedQueryNotFoundError: If no entity declares *name*.
        """
        if (statement := self._statements.get(name)) is not None:
            return statement

        try:
            model, query = self._named_queries[name]
        except KeyError:
            raise NamedQueryNotFoundError(name) from None

        statement = self._statements[name] = query.build(model)
        logger.debug("Compiled named query %r for %s", name, model.__name__)

        return statement

    def entity_graph(self, name: str) -> EntityGraph:
        """Return a new ``EntityGraph`` built from the declaration named *name*.

        Raises:
            EntityGraphNotFoundError: If no entity declares *name*, or the
                declaration references an unknown subgraph.
        """
        try:
            model, graph = self._entity_graphs[name]
        except KeyError:
            raise EntityGraphNotFoundError(name) from None

        return graph.build(model, self)

    def entity_graphs(self, model: type[orm.DeclarativeBase]) -> tuple[str, ...]:
        """Names of the entity graphs declared on *model*."""
        return tuple(name for name, (owner, _) in self._entity_graphs.items() if owner is model)

    def create_entity_graph(self, model: type[orm.DeclarativeBase]) -> EntityGraph:
        """Return an empty dynamic entity graph rooted at *model*."""
        return EntityGraph(model, self)

    @classmethod
    def reset(cls) -> None:
        """Destroy the singleton, allowing re-initialization (primarily for tests)."""
        cls.__instance = None


def get_relationships(base: type[orm.DeclarativeBase]) -> Relationships:
    """Map every entity of a declarative base to its relationship properties.

    Raises:
        AssertionError: If base is not a direct subclass of orm.DeclarativeBase.
    """
    assert orm.DeclarativeBase in getattr(base, "__bases__", ()), (
        "base must be a subclass of orm.DeclarativeBase"
    )

    return frozendict({
        mapper.class_: tuple(mapper.relationships.values()) for mapper in base.registry.mappers
    })


def init_metamodel(base: type[orm.DeclarativeBase]) -> Metamodel:
    """Initialize the global ``Metamodel`` singleton from *base*.

    Call once during application startup, after all models are imported.
    Calling it again replaces the registry.

    Example:
        >>> from sqla_fetchgraphs.models import Base
        >>> init_metamodel(Base)
    """
    Metamodel.reset()

    return Metamodel(base)
