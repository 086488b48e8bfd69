"""Fetch strategies for SQLAlchemy association graphs.

sqla_fetchgraphs loads one root entity with selected associations populated,
using either a fetch-join statement (``fetch_join_select``), a named query, a
named entity graph or an entity graph built at call time. Initialize the
``Metamodel`` singleton at startup with your declarative base, then use
``fetch_one`` or one of the ``CompanyDao`` implementations.
"""

from ._version import __version__, __version_tuple__
from .core import FetchJoinBuilder, cache_clear, cache_info, fetch_join_select, graph_options
from .dao import (
    COMPANY_DAOS,
    CompanyDao,
    CriteriaCompanyDao,
    DynamicEntityGraphCompanyDao,
    NamedEntityGraphCompanyDao,
    NamedQueryCompanyDao,
)
from .datastructures import frozendict
from .exceptions import (
    EntityGraphNotFoundError,
    FetchGraphError,
    IncorrectResultSizeError,
    NamedQueryNotFoundError,
    UnknownAttributeError,
)
from .execution import execute_single, fetch_one, find
from .graph import (
    FETCH_GRAPH,
    LOAD_GRAPH,
    AttributeNode,
    EntityGraph,
    NamedAttributeNode,
    NamedEntityGraph,
    NamedQuery,
    NamedSubgraph,
    Subgraph,
)
from .metamodel import Metamodel, get_relationships, init_metamodel
from .tools import get_primary_key, get_table_name, single_result, unique_scalars


__all__ = (
    "COMPANY_DAOS",
    "FETCH_GRAPH",
    "LOAD_GRAPH",
    "AttributeNode",
    "CompanyDao",
    "CriteriaCompanyDao",
    "DynamicEntityGraphCompanyDao",
    "EntityGraph",
    "EntityGraphNotFoundError",
    "FetchGraphError",
    "FetchJoinBuilder",
    "IncorrectResultSizeError",
    "Metamodel",
    "NamedAttributeNode",
    "NamedEntityGraph",
    "NamedEntityGraphCompanyDao",
    "NamedQuery",
    "NamedQueryCompanyDao",
    "NamedQueryNotFoundError",
    "NamedSubgraph",
    "Subgraph",
    "UnknownAttributeError",
    "__version__",
    "__version_tuple__",
    "cache_clear",
    "cache_info",
    "execute_single",
    "fetch_join_select",
    "fetch_one",
    "find",
    "frozendict",
    "get_primary_key",
    "get_relationships",
    "get_table_name",
    "graph_options",
    "init_metamodel",
    "single_result",
    "unique_scalars",
)
