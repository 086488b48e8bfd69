from __future__ import annotations

import os
from collections.abc import AsyncIterator, Iterator

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncConnection,
    AsyncEngine,
    AsyncSession,
    create_async_engine,
)

from sqla_fetchgraphs import cache_clear
from sqla_fetchgraphs.metamodel import Metamodel, init_metamodel
from sqla_fetchgraphs.models import Base, Car, Company, Department, Employee


pytestmark = pytest.mark.anyio


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--db",
        default="sqlite",
        choices=["sqlite", "postgres"],
        help="Database backend to test against",
    )


@pytest.fixture(scope="session")
def db_backend(request: pytest.FixtureRequest) -> str:
    value: str = request.config.getoption("--db")

    return value


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(scope="session", autouse=True)
def _init_metamodel() -> None:
    """Initialize the Metamodel singleton from the declarative base.

    Sync, no DB needed -- safe to run for all tests including unit tests.
    """
    try:
        Metamodel()
    except RuntimeError:
        init_metamodel(Base)


@pytest.fixture(scope="session")
def db_config(db_backend: str, tmp_path_factory: pytest.TempPathFactory) -> Iterator[str]:
    match db_backend:
        case "postgres":
            from testcontainers.postgres import PostgresContainer

            pg = PostgresContainer(image="postgres:latest")
            if os.name == "nt":
                pg.get_container_host_ip = lambda: "127.0.0.1"
            with pg:
                host = pg.get_container_host_ip()
                dsn = (
                    f"postgresql+asyncpg://{pg.username}:{pg.password}"
                    f"@{host}:{pg.get_exposed_port(pg.port)}/{pg.dbname}"
                )
                yield dsn

        case "sqlite":
            tmp = tmp_path_factory.mktemp("db")
            yield f"sqlite+aiosqlite:///{tmp}/test.db"


@pytest.fixture(scope="session")
def engine(db_config: str) -> AsyncEngine:
    return create_async_engine(db_config, echo=False)


@pytest.fixture(scope="session")
async def _create_tables(engine: AsyncEngine) -> AsyncIterator[None]:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def connection(
    engine: AsyncEngine, _create_tables: None
) -> AsyncIterator[AsyncConnection]:
    async with engine.connect() as conn:
        trans = await conn.begin()
        yield conn
        await trans.rollback()


@pytest.fixture
async def session(connection: AsyncConnection) -> AsyncIterator[AsyncSession]:
    sess = AsyncSession(bind=connection, expire_on_commit=False)
    yield sess
    await sess.close()


@pytest.fixture
async def seed_data(session: AsyncSession) -> dict[str, list[Base]]:
    acme = Company(id=1, name="Acme")
    globex = Company(id=2, name="Globex")
    initech = Company(id=3, name="Initech")
    session.add_all([acme, globex, initech])
    await session.flush()

    research = Department(id=1, name="Research", company_id=1)
    sales = Department(id=2, name="Sales", company_id=1)
    support = Department(id=3, name="Support", company_id=2)
    session.add_all([research, sales, support])
    await session.flush()

    employees = [
        Employee(id=1, name="Ada", surname="Lovelace", department_id=1),
        Employee(id=2, name="Alan", surname="Turing", department_id=1),
        Employee(id=3, name="Grace", surname="Hopper", department_id=1),
        Employee(id=4, name="Dale", surname="Carnegie", department_id=2),
        Employee(id=5, name="Zig", surname="Ziglar", department_id=2),
    ]
    session.add_all(employees)
    await session.flush()

    cars = [
        Car(id=1, model="Skoda Octavia", registration_number="AC-001", company_id=1),
        Car(id=2, model="Toyota Corolla", registration_number="AC-002", company_id=1),
        Car(id=3, model="Ford Transit", registration_number="AC-003", company_id=1),
    ]
    session.add_all(cars)
    await session.flush()

    session.expunge_all()

    return {
        "companies": [acme, globex, initech],
        "departments": [research, sales, support],
        "employees": employees,
        "cars": cars,
    }


@pytest.fixture(autouse=True)
def clear_lru_caches() -> Iterator[None]:
    yield
    cache_clear()


@pytest.fixture
def reset_metamodel_singleton() -> Iterator[None]:
    saved = Metamodel._Metamodel__instance  # type: ignore[attr-defined]
    yield
    Metamodel._Metamodel__instance = saved  # type: ignore[attr-defined]
