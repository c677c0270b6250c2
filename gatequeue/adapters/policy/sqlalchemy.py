"""
SQLAlchemyPolicyStore — policy persistence in a casbin_rule-style table.

Schema
------
  casbin_rule(id, ptype, v0 .. v6)

  ptype "p" (rule)      v0..v6 = sub, obj, act, domain, region, level, eft
  ptype "g" (grouping)  v0..v2 = user, role, domain

Works with any SQLAlchemy async driver; aiosqlite is used for local runs
and tests. Every SQLAlchemyError is wrapped in StorageError.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager

from sqlalchemy import Integer, String, delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.pool import StaticPool

from gatequeue.domain.errors import StorageError
from gatequeue.domain.models import Effect, PolicyRule, RoleAssignment

RULE = "p"
GROUPING = "g"


class Base(DeclarativeBase):
    pass


class CasbinRule(Base):
    __tablename__ = "casbin_rule"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ptype: Mapped[str] = mapped_column(String(8), nullable=False, index=True)
    v0: Mapped[str | None] = mapped_column(String(255), nullable=True)
    v1: Mapped[str | None] = mapped_column(String(255), nullable=True)
    v2: Mapped[str | None] = mapped_column(String(255), nullable=True)
    v3: Mapped[str | None] = mapped_column(String(255), nullable=True)
    v4: Mapped[str | None] = mapped_column(String(255), nullable=True)
    v5: Mapped[str | None] = mapped_column(String(255), nullable=True)
    v6: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def values(self) -> list[str | None]:
        return [self.v0, self.v1, self.v2, self.v3, self.v4, self.v5, self.v6]


_COLUMNS = (
    CasbinRule.v0,
    CasbinRule.v1,
    CasbinRule.v2,
    CasbinRule.v3,
    CasbinRule.v4,
    CasbinRule.v5,
    CasbinRule.v6,
)


def _row(ptype: str, values: tuple[str, ...]) -> CasbinRule:
    return CasbinRule(ptype=ptype, **{f"v{i}": v for i, v in enumerate(values)})


def _matches(ptype: str, values: tuple[str, ...]):
    return [CasbinRule.ptype == ptype] + [
        column == value for column, value in zip(_COLUMNS, values)
    ]


class SQLAlchemyPolicyStore:
    """
    Parameters
    ----------
    session_factory : async_sessionmaker bound to the target database
    engine          : owning engine, disposed by close() when given
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        engine: AsyncEngine | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._engine = engine

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "SQLAlchemyPolicyStore":
        if ":memory:" in url:
            # One shared connection, otherwise every session sees an empty db.
            kwargs.setdefault("poolclass", StaticPool)
            kwargs.setdefault("connect_args", {"check_same_thread": False})
        engine = create_async_engine(url, **kwargs)
        return cls(async_sessionmaker(engine, expire_on_commit=False), engine=engine)

    async def create_schema(self) -> None:
        if self._engine is None:
            raise RuntimeError("create_schema requires an owned engine")
        async with self._guard("create_schema"):
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

    @asynccontextmanager
    async def _guard(self, what: str) -> AsyncIterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            raise StorageError(f"Policy store {what} failed", exc) from exc

    # ------------------------------------------------------------------ #
    # Loading                                                              #
    # ------------------------------------------------------------------ #

    async def _load(self, ptype: str) -> list[CasbinRule]:
        async with self._guard("load"), self._session_factory() as session:
            result = await session.execute(
                select(CasbinRule).where(CasbinRule.ptype == ptype).order_by(CasbinRule.id)
            )
            return list(result.scalars())

    async def load_rules(self) -> list[PolicyRule]:
        rows = await self._load(RULE)
        return [
            PolicyRule(
                sub=row.v0,
                obj=row.v1,
                act=row.v2,
                domain=row.v3 or "*",
                region=row.v4 or "*",
                level=row.v5 or "*",
                eft=Effect(row.v6 or Effect.ALLOW.value),
            )
            for row in rows
        ]

    async def load_groupings(self) -> list[RoleAssignment]:
        rows = await self._load(GROUPING)
        return [
            RoleAssignment(user=row.v0, role=row.v1, domain=row.v2 or "*")
            for row in rows
        ]

    # ------------------------------------------------------------------ #
    # Mutation                                                             #
    # ------------------------------------------------------------------ #

    async def _add(self, ptype: str, tuples: Sequence[tuple[str, ...]]) -> None:
        async with self._guard("add"), self._session_factory() as session:
            for values in tuples:
                existing = await session.execute(
                    select(CasbinRule.id).where(*_matches(ptype, values)).limit(1)
                )
                if existing.scalar_one_or_none() is None:
                    session.add(_row(ptype, values))
            await session.commit()

    async def _remove(self, ptype: str, tuples: Sequence[tuple[str, ...]]) -> None:
        async with self._guard("remove"), self._session_factory() as session:
            for values in tuples:
                await session.execute(delete(CasbinRule).where(*_matches(ptype, values)))
            await session.commit()

    async def add_rules(self, rules: Sequence[PolicyRule]) -> None:
        await self._add(RULE, [r.as_tuple() for r in rules])

    async def remove_rules(self, rules: Sequence[PolicyRule]) -> None:
        await self._remove(RULE, [r.as_tuple() for r in rules])

    async def add_groupings(self, groupings: Sequence[RoleAssignment]) -> None:
        await self._add(GROUPING, [g.as_tuple() for g in groupings])

    async def remove_groupings(self, groupings: Sequence[RoleAssignment]) -> None:
        await self._remove(GROUPING, [g.as_tuple() for g in groupings])

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
