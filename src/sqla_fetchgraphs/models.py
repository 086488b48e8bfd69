from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy import orm

from .graph import NamedAttributeNode, NamedEntityGraph, NamedQuery, NamedSubgraph


class Base(orm.DeclarativeBase):
    pass


class Company(Base):
    __tablename__ = "companies"
    __named_queries__ = (
        NamedQuery(
            "companyWithDepartmentsNamedQuery",
            lambda c: (
                sa.select(c)
                .distinct()
                .outerjoin(c.departments)
                .options(orm.contains_eager(c.departments))
                .where(c.id == sa.bindparam("id"))
            ),
        ),
        NamedQuery(
            "companyWithDepartmentsAndEmployeesNamedQuery",
            lambda c: (
                sa.select(c)
                .distinct()
                .outerjoin(c.departments)
                .outerjoin(Department.employees)
                .options(orm.contains_eager(c.departments).contains_eager(Department.employees))
                .where(c.id == sa.bindparam("id"))
            ),
        ),
        NamedQuery(
            "companyWithCarsNamedQuery",
            lambda c: (
                sa.select(c)
                .distinct()
                .outerjoin(c.cars)
                .options(orm.contains_eager(c.cars))
                .where(c.id == sa.bindparam("id"))
            ),
        ),
    )
    __named_entity_graphs__ = (
        NamedEntityGraph("companyWithDepartmentsGraph", attribute_nodes=("departments",)),
        NamedEntityGraph(
            "companyWithDepartmentsAndEmployeesGraph",
            attribute_nodes=(
                NamedAttributeNode("departments", subgraph="departmentsWithEmployees"),
            ),
            subgraphs=(NamedSubgraph("departmentsWithEmployees", attribute_nodes=("employees",)),),
        ),
        NamedEntityGraph("companyWithCarsGraph", attribute_nodes=("cars",)),
    )

    id: orm.Mapped[int] = orm.mapped_column(primary_key=True)
    name: orm.Mapped[str] = orm.mapped_column(sa.String(100))

    # relationships
    departments: orm.Mapped[list[Department]] = orm.relationship(back_populates="company")
    cars: orm.Mapped[list[Car]] = orm.relationship(back_populates="company")

    def __repr__(self) -> str:
        return f"Company(id={self.id!r}, name={self.name!r})"


class Department(Base):
    __tablename__ = "departments"

    id: orm.Mapped[int] = orm.mapped_column(primary_key=True)
    name: orm.Mapped[str] = orm.mapped_column(sa.String(100))
    company_id: orm.Mapped[int] = orm.mapped_column(sa.ForeignKey("companies.id"))

    # relationships
    company: orm.Mapped[Company] = orm.relationship(back_populates="departments")
    employees: orm.Mapped[list[Employee]] = orm.relationship(back_populates="department")

    def __repr__(self) -> str:
        return f"Department(id={self.id!r}, name={self.name!r})"


class Employee(Base):
    __tablename__ = "employees"

    id: orm.Mapped[int] = orm.mapped_column(primary_key=True)
    name: orm.Mapped[str] = orm.mapped_column(sa.String(100))
    surname: orm.Mapped[str] = orm.mapped_column(sa.String(100))
    department_id: orm.Mapped[int] = orm.mapped_column(sa.ForeignKey("departments.id"))

    # relationships
    department: orm.Mapped[Department] = orm.relationship(back_populates="employees")

    def __repr__(self) -> str:
        return f"Employee(id={self.id!r}, name={self.name!r}, surname={self.surname!r})"


class Car(Base):
    __tablename__ = "cars"

    id: orm.Mapped[int] = orm.mapped_column(primary_key=True)
    model: orm.Mapped[str] = orm.mapped_column(sa.String(100))
    registration_number: orm.Mapped[str] = orm.mapped_column(sa.String(20), unique=True)
    company_id: orm.Mapped[int] = orm.mapped_column(sa.ForeignKey("companies.id"))

    # relationships
    company: orm.Mapped[Company] = orm.relationship(back_populates="cars")

    def __repr__(self) -> str:
        return f"Car(id={self.id!r}, model={self.model!r})"
