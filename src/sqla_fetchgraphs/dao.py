"""Data-access objects loading a ``Company`` with its associations.

Each implementation reaches the same result through a different mechanism:

* ``CriteriaCompanyDao`` - statements built programmatically with fetch joins;
* ``NamedQueryCompanyDao`` - statements registered on the entity by name;
* ``NamedEntityGraphCompanyDao`` - entity graphs (and a subgraph) registered
  on the entity by name, applied as fetch graphs;
* ``DynamicEntityGraphCompanyDao`` - entity graphs assembled at call time.

All of them return ``None`` when the company does not exist. None of them
commits or closes the session; the transaction belongs to the caller.
"""

from __future__ import annotations

import abc
import logging
from collections.abc import Mapping
from typing import Final

from sqlalchemy.ext.asyncio import AsyncSession

from .core import ID_PARAM, fetch_join_select
from .datastructures import frozendict
from .execution import execute_single, find
from .graph import FETCH_GRAPH, LOAD_GRAPH
from .metamodel import Metamodel
from .models import Company


logger = logging.getLogger(__name__)


class CompanyDao(abc.ABC):
    __slots__ = ("metamodel", "session")

    def __init__(self, session: AsyncSession, metamodel: Metamodel | None = None) -> None:
        self.session = session
        self.metamodel = metamodel or Metamodel()

    @abc.abstractmethod
    async def get_company_with_departments(self, company_id: int) -> Company | None:
        """Company with ``departments`` loaded."""

    @abc.abstractmethod
    async def get_company_with_departments_and_employees(
        self, company_id: int
    ) -> Company | None:
        """Company with ``departments`` and each department's ``employees`` loaded."""

    @abc.abstractmethod
    async def get_company_with_cars(self, company_id: int) -> Company | None:
        """Company with ``cars`` loaded."""


class CriteriaCompanyDao(CompanyDao):
    __slots__ = ()

    async def _fetch(self, company_id: int, *loads: str) -> Company | None:
        logger.debug("criteria: company %r with %r", company_id, loads)
        query = fetch_join_select(Company, loads, metamodel=self.metamodel)

        return await execute_single(self.session, query, {ID_PARAM: company_id})

    async def get_company_with_departments(self, company_id: int) -> Company | None:
        return await self._fetch(company_id, "departments")

    async def get_company_with_departments_and_employees(
        self, company_id: int
    ) -> Company | None:
        return await self._fetch(company_id, "departments.employees")

    async def get_company_with_cars(self, company_id: int) -> Company | None:
        return await self._fetch(company_id, "cars")


class NamedQueryCompanyDao(CompanyDao):
    __slots__ = ()

    async def _fetch(self, company_id: int, name: str) -> Company | None:
        logger.debug("named query %r: company %r", name, company_id)
        query = self.metamodel.named_query(name)

        return await execute_single(self.session, query, {ID_PARAM: company_id})

    async def get_company_with_departments(self, company_id: int) -> Company | None:
        return await self._fetch(company_id, "companyWithDepartmentsNamedQuery")

    async def get_company_with_departments_and_employees(
        self, company_id: int
    ) -> Company | None:
        return await self._fetch(company_id, "companyWithDepartmentsAndEmployeesNamedQuery")

    async def get_company_with_cars(self, company_id: int) -> Company | None:
        return await self._fetch(company_id, "companyWithCarsNamedQuery")


class NamedEntityGraphCompanyDao(CompanyDao):
    __slots__ = ()

    async def _fetch(self, company_id: int, name: str) -> Company | None:
        logger.debug("named entity graph %r: company %r", name, company_id)
        graph = self.metamodel.entity_graph(name)

        return await find(self.session, Company, company_id, frozendict({FETCH_GRAPH: graph}))

    async def get_company_with_departments(self, company_id: int) -> Company | None:
        return await self._fetch(company_id, "companyWithDepartmentsGraph")

    async def get_company_with_departments_and_employees(
        self, company_id: int
    ) -> Company | None:
        # "departments" carries the "departmentsWithEmployees" subgraph
        return await self._fetch(company_id, "companyWithDepartmentsAndEmployeesGraph")

    async def get_company_with_cars(self, company_id: int) -> Company | None:
        return await self._fetch(company_id, "companyWithCarsGraph")


class DynamicEntityGraphCompanyDao(CompanyDao):
    __slots__ = ()

    async def get_company_with_departments(self, company_id: int) -> Company | None:
        graph = self.metamodel.create_entity_graph(Company)
        graph.add_attribute_nodes("departments")

        return await find(self.session, Company, company_id, frozendict({FETCH_GRAPH: graph}))

    async def get_company_with_departments_and_employees(
        self, company_id: int
    ) -> Company | None:
        graph = self.metamodel.create_entity_graph(Company)
        graph.add_subgraph("departments").add_attribute_nodes("employees")

        return await find(self.session, Company, company_id, frozendict({FETCH_GRAPH: graph}))

    async def get_company_with_cars(self, company_id: int) -> Company | None:
        graph = self.metamodel.create_entity_graph(Company)
        graph.add_attribute_nodes("cars")

        return await find(self.session, Company, company_id, frozendict({LOAD_GRAPH: graph}))


COMPANY_DAOS: Final[Mapping[str, type[CompanyDao]]] = frozendict({
    "criteria": CriteriaCompanyDao,
    "named_query": NamedQueryCompanyDao,
    "named_entity_graph": NamedEntityGraphCompanyDao,
    "dynamic_entity_graph": DynamicEntityGraphCompanyDao,
})
