from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Final, Literal

import sqlalchemy as sa
from sqlalchemy import orm

from .datastructures import frozendict
from .exceptions import EntityGraphNotFoundError


if TYPE_CHECKING:
    from .metamodel import Metamodel

FETCH_GRAPH: Final[str] = "javax.persistence.fetchgraph"
LOAD_GRAPH: Final[str] = "javax.persistence.loadgraph"

GraphSemantics = Literal["fetch", "load"]

HINT_SEMANTICS: Final[Mapping[str, GraphSemantics]] = frozendict({
    FETCH_GRAPH: "fetch",
    LOAD_GRAPH: "load",
})


@dataclass(slots=True)
class AttributeNode:
    """A single association of a (sub)graph, optionally with its own subgraph."""

    key: str
    subgraph: Subgraph | None = None


class Subgraph:
    """Set of associations of *model* that should be loaded eagerly.

    Keys are validated against the relationships known to the metamodel as
    they are added, so a typo fails when the graph is built rather than when
    the query runs.
    """

    __slots__ = ("_nodes", "metamodel", "model")

    def __init__(self, model: type[orm.DeclarativeBase], metamodel: Metamodel) -> None:
        self.model = model
        self.metamodel = metamodel
        self._nodes: dict[str, AttributeNode] = {}

    @property
    def attribute_nodes(self) -> tuple[AttributeNode, ...]:
        return tuple(self._nodes.values())

    def add_attribute_nodes(self, *keys: str) -> None:
        """Add associations by relationship key.

        Raises:
            UnknownAttributeError: If a key is not a relationship of ``model``.
        """
        for key in keys:
            self.metamodel.relationship(self.model, key)
            self._nodes.setdefault(key, AttributeNode(key))

    def add_subgraph(self, key: str) -> Subgraph:
        """Add association *key* and return the subgraph for its target entity.

        Calling it twice for the same key returns the same subgraph.
        """
        relationship = self.metamodel.relationship(self.model, key)
        node = self._nodes.setdefault(key, AttributeNode(key))
        if node.subgraph is None:
            node.subgraph = Subgraph(relationship.mapper.class_, self.metamodel)

        return node.subgraph

    def paths(self) -> tuple[str, ...]:
        """Flatten the graph into dotted association paths, parents first."""
        out: list[str] = []
        for node in self._nodes.values():
            out.append(node.key)
            if node.subgraph is not None:
                out.extend(f"{node.key}.{path}" for path in node.subgraph.paths())

        return tuple(out)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.model.__name__} {list(self.paths())!r}>"


class EntityGraph(Subgraph):
    """Root graph for an entity, either named (declared on the model) or dynamic.

    Example::

        graph = Metamodel().create_entity_graph(Company)
        graph.add_attribute_nodes("cars")
        graph.add_subgraph("departments").add_attribute_nodes("employees")
        graph.paths()  # ("cars", "departments", "departments.employees")
    """

    __slots__ = ("name",)

    def __init__(
        self,
        model: type[orm.DeclarativeBase],
        metamodel: Metamodel,
        *,
        name: str | None = None,
    ) -> None:
        super().__init__(model, metamodel)
        self.name = name

    @classmethod
    def from_paths(
        cls,
        model: type[orm.DeclarativeBase],
        paths: Iterable[str],
        metamodel: Metamodel,
    ) -> EntityGraph:
        """Build a dynamic graph from dotted association paths."""
        graph = cls(model, metamodel)
        for path in paths:
            *parents, leaf = path.split(".")
            target: Subgraph = graph
            for key in parents:
                target = target.add_subgraph(key)
            target.add_attribute_nodes(leaf)

        return graph


@dataclass(frozen=True, slots=True)
class NamedAttributeNode:
    value: str
    subgraph: str = ""


@dataclass(frozen=True, slots=True)
class NamedSubgraph:
    name: str
    attribute_nodes: tuple[NamedAttributeNode | str, ...] = ()


@dataclass(frozen=True, slots=True)
class NamedEntityGraph:
    """Declarative entity graph, listed in a model's ``__named_entity_graphs__``.

    Plain strings in ``attribute_nodes`` are shorthand for
    ``NamedAttributeNode(value)``. A node that names a ``subgraph`` is expanded
    with the attribute nodes of the ``NamedSubgraph`` of that name.
    """

    name: str
    attribute_nodes: tuple[NamedAttributeNode | str, ...] = ()
    subgraphs: tuple[NamedSubgraph, ...] = field(default=())

    def build(self, model: type[orm.DeclarativeBase], metamodel: Metamodel) -> EntityGraph:
        graph = EntityGraph(model, metamodel, name=self.name)
        subgraphs = {subgraph.name: subgraph for subgraph in self.subgraphs}
        _populate(graph, self.attribute_nodes, subgraphs, trail=())

        return graph


def _populate(
    target: Subgraph,
    nodes: Iterable[NamedAttributeNode | str],
    subgraphs: Mapping[str, NamedSubgraph],
    trail: tuple[str, ...],
) -> None:
    for node in nodes:
        if isinstance(node, str):
            node = NamedAttributeNode(node)  # noqa: PLW2901

        if not node.subgraph:
            target.add_attribute_nodes(node.value)
            continue

        if node.subgraph in trail:
            raise ValueError(f"Subgraph {node.subgraph!r} references itself via {trail!r}")
        if (definition := subgraphs.get(node.subgraph)) is None:
            raise EntityGraphNotFoundError(node.subgraph)

        _populate(
            target.add_subgraph(node.value),
            definition.attribute_nodes,
            subgraphs,
            (*trail, node.subgraph),
        )


@dataclass(frozen=True, slots=True)
class NamedQuery:
    """Precompiled statement registered against an entity.

    ``statement`` receives the entity class and returns the SELECT; the root
    identifier is passed at execution time as the bound parameter ``:id``::

        NamedQuery(
            "companyWithCarsNamedQuery",
            lambda c: (
                sa.select(c)
                .distinct()
                .outerjoin(c.cars)
                .options(orm.contains_eager(c.cars))
                .where(c.id == sa.bindparam("id"))
            ),
        )
    """

    name: str
    statement: Callable[[type[Any]], sa.Select[Any]]

    def build(self, model: type[orm.DeclarativeBase]) -> sa.Select[Any]:
        return self.statement(model)
