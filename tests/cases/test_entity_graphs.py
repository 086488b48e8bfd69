from __future__ import annotations

import pytest
import sqlalchemy as sa
from sqlalchemy import orm
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncSession

from sqla_fetchgraphs import (
    FETCH_GRAPH,
    LOAD_GRAPH,
    DynamicEntityGraphCompanyDao,
    Metamodel,
    NamedEntityGraphCompanyDao,
    fetch_one,
    find,
    init_metamodel,
)
from sqla_fetchgraphs.models import Base, Company, Department

pytestmark = pytest.mark.anyio


class TestNamedEntityGraphDao:
    async def test_departments(self, session: AsyncSession, seed_data: dict[str, list[Base]]) -> None:
        company = await NamedEntityGraphCompanyDao(session).get_company_with_departments(1)

        assert company is not None
        assert sorted(d.name for d in company.departments) == ["Research", "Sales"]
        assert "cars" in sa.inspect(company).unloaded

    async def test_subgraph_loads_employees(
        self, session: AsyncSession, seed_data: dict[str, list[Base]]
    ) -> None:
        company = await NamedEntityGraphCompanyDao(session).get_company_with_departments_and_employees(1)

        assert company is not None
        employees = {d.name: sorted(e.surname for e in d.employees) for d in company.departments}
        assert employees == {
            "Research": ["Hopper", "Lovelace", "Turing"],
            "Sales": ["Carnegie", "Ziglar"],
        }

    async def test_cars(self, session: AsyncSession, seed_data: dict[str, list[Base]]) -> None:
        company = await NamedEntityGraphCompanyDao(session).get_company_with_cars(1)

        assert company is not None
        assert len(company.cars) == 3

    async def test_graph_applied_to_identity_already_in_session(
        self, session: AsyncSession, seed_data: dict[str, list[Base]]
    ) -> None:
        plain = await session.get(Company, 1)
        assert plain is not None
        assert "departments" in sa.inspect(plain).unloaded

        company = await NamedEntityGraphCompanyDao(session).get_company_with_departments(1)

        assert company is plain
        assert len(company.departments) == 2


class TestDynamicEntityGraphDao:
    async def test_departments(self, session: AsyncSession, seed_data: dict[str, list[Base]]) -> None:
        company = await DynamicEntityGraphCompanyDao(session).get_company_with_departments(1)

        assert company is not None
        assert len(company.departments) == 2

    async def test_departments_and_employees(
        self, session: AsyncSession, seed_data: dict[str, list[Base]]
    ) -> None:
        company = await DynamicEntityGraphCompanyDao(session).get_company_with_departments_and_employees(1)

        assert company is not None
        assert sum(len(d.employees) for d in company.departments) == 5

    async def test_cars_as_load_graph(
        self, session: AsyncSession, seed_data: dict[str, list[Base]]
    ) -> None:
        company = await DynamicEntityGraphCompanyDao(session).get_company_with_cars(1)

        assert company is not None
        assert sorted(c.model for c in company.cars) == ["Ford Transit", "Skoda Octavia", "Toyota Corolla"]
        # lazy by mapping, so a load graph leaves it alone as well
        assert "departments" in sa.inspect(company).unloaded


class TestFind:
    async def test_without_hints(self, session: AsyncSession, seed_data: dict[str, list[Base]]) -> None:
        company = await find(session, Company, 2)

        assert company is not None
        assert company.name == "Globex"

    async def test_subqueryload_many_load(
        self, session: AsyncSession, seed_data: dict[str, list[Base]]
    ) -> None:
        graph = Metamodel().entity_graph("companyWithDepartmentsAndEmployeesGraph")
        company = await find(session, Company, 1, {LOAD_GRAPH: graph}, many_load="subqueryload")

        assert company is not None
        assert sum(len(d.employees) for d in company.departments) == 5

    async def test_scalar_reference_in_graph(
        self, session: AsyncSession, seed_data: dict[str, list[Base]]
    ) -> None:
        graph = Metamodel().create_entity_graph(Department)
        graph.add_attribute_nodes("company", "employees")
        department = await find(session, Department, 1, {FETCH_GRAPH: graph})

        assert department is not None
        assert department.company.name == "Acme"
        assert len(department.employees) == 3

    async def test_both_hints_rejected(
        self, session: AsyncSession, seed_data: dict[str, list[Base]]
    ) -> None:
        graph = Metamodel().entity_graph("companyWithCarsGraph")
        with pytest.raises(ValueError, match="mutually exclusive"):
            await find(session, Company, 1, {FETCH_GRAPH: graph, LOAD_GRAPH: graph})

    async def test_graph_for_other_entity_rejected(
        self, session: AsyncSession, seed_data: dict[str, list[Base]]
    ) -> None:
        graph = Metamodel().create_entity_graph(Department)
        graph.add_attribute_nodes("employees")
        with pytest.raises(ValueError, match="rooted at Department"):
            await find(session, Company, 1, {FETCH_GRAPH: graph})

    @pytest.mark.parametrize("strategy", ["fetchgraph", "loadgraph"])
    async def test_fetch_one_graph_strategies(
        self,
        session: AsyncSession,
        seed_data: dict[str, list[Base]],
        strategy: str,
    ) -> None:
        company = await fetch_one(
            session, Company, 1, ("departments.employees", "cars"), strategy=strategy  # type: ignore[arg-type]
        )

        assert company is not None
        assert len(company.departments) == 2
        assert len(company.cars) == 3

    async def test_fetch_one_passes_many_load(
        self, session: AsyncSession, seed_data: dict[str, list[Base]]
    ) -> None:
        with pytest.warns(UserWarning, match="Unknown many_load strategy: eager"):
            company = await fetch_one(
                session, Company, 1, ("departments",), strategy="fetchgraph", many_load="eager"
            )

        assert company is not None
        assert len(company.departments) == 2

    async def test_fetch_one_subqueryload(
        self, session: AsyncSession, seed_data: dict[str, list[Base]]
    ) -> None:
        company = await fetch_one(
            session,
            Company,
            1,
            ("departments.employees",),
            strategy="loadgraph",
            many_load="subqueryload",
        )

        assert company is not None
        assert sum(len(d.employees) for d in company.departments) == 5


class PetsBase(orm.DeclarativeBase):
    pass


class Owner(PetsBase):
    __tablename__ = "owners"

    id: orm.Mapped[int] = orm.mapped_column(primary_key=True)
    name: orm.Mapped[str]

    # relationships
    pets: orm.Mapped[list[Pet]] = orm.relationship(lazy="selectin")
    toys: orm.Mapped[list[Toy]] = orm.relationship()


class Pet(PetsBase):
    __tablename__ = "pets"

    id: orm.Mapped[int] = orm.mapped_column(primary_key=True)
    owner_id: orm.Mapped[int] = orm.mapped_column(sa.ForeignKey("owners.id"))


class Toy(PetsBase):
    __tablename__ = "toys"

    id: orm.Mapped[int] = orm.mapped_column(primary_key=True)
    owner_id: orm.Mapped[int] = orm.mapped_column(sa.ForeignKey("owners.id"))


@pytest.fixture
async def owner_session(
    connection: AsyncConnection,
    session: AsyncSession,
    reset_metamodel_singleton: None,
) -> AsyncSession:
    await connection.run_sync(PetsBase.metadata.create_all)
    session.add(Owner(id=1, name="Jon"))
    await session.flush()
    session.add_all([Pet(id=1, owner_id=1), Pet(id=2, owner_id=1), Toy(id=1, owner_id=1)])
    await session.flush()
    session.expunge_all()

    return session


class TestGraphSemanticsOnEagerMapping:
    async def test_fetch_graph_keeps_eager_mapping_lazy(self, owner_session: AsyncSession) -> None:
        graph = init_metamodel(PetsBase).create_entity_graph(Owner)
        graph.add_attribute_nodes("toys")
        owner = await find(owner_session, Owner, 1, {FETCH_GRAPH: graph})

        assert owner is not None
        assert "pets" in sa.inspect(owner).unloaded
        assert "toys" not in sa.inspect(owner).unloaded
        assert len(owner.toys) == 1

    async def test_load_graph_keeps_mapped_strategy(self, owner_session: AsyncSession) -> None:
        graph = init_metamodel(PetsBase).create_entity_graph(Owner)
        graph.add_attribute_nodes("toys")
        owner = await find(owner_session, Owner, 1, {LOAD_GRAPH: graph})

        assert owner is not None
        assert "pets" not in sa.inspect(owner).unloaded
        assert len(owner.pets) == 2
        assert len(owner.toys) == 1
