from __future__ import annotations


class FetchGraphError(Exception):
    """Base class for all errors raised by sqla_fetchgraphs."""


class EntityGraphNotFoundError(FetchGraphError, LookupError):
    """No entity graph (or subgraph) is registered under the requested name."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Entity graph {name!r} is not registered")


class NamedQueryNotFoundError(FetchGraphError, LookupError):
    """No named query is registered under the requested name."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Named query {name!r} is not registered")


class UnknownAttributeError(FetchGraphError, ValueError):
    """An association path segment is not a relationship of the entity."""

    def __init__(self, model: type, key: str, path: str = "") -> None:
        self.model = model
        self.key = key
        self.path = path or key
        super().__init__(
            f"No relationship {key!r} on {model.__name__} (resolving {self.path!r})"
        )


class IncorrectResultSizeError(FetchGraphError, ValueError):
    """A single result was expected but several distinct rows came back."""

    def __init__(self, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"Incorrect result size: expected {expected}, actual {actual}")
