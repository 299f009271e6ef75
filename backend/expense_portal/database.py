import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine, AsyncSession
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

Base = declarative_base()

# Reference data. Ids are fixed so that tool descriptions and defaults stay stable.
INITIAL_ROLES = [
    {"id": 1, "name": "Employee", "description": "Submits expenses"},
    {"id": 2, "name": "Manager", "description": "Approves or rejects submitted expenses"},
]

INITIAL_USERS = [
    {"id": 1, "name": "Alice Example", "email": "alice@example.co.uk", "role_id": 1, "manager_id": 2},
    {"id": 2, "name": "Bob Manager", "email": "bob.manager@example.co.uk", "role_id": 2, "manager_id": None},
]

INITIAL_CATEGORIES = [
    {"id": 1, "name": "Travel"},
    {"id": 2, "name": "Meals"},
    {"id": 3, "name": "Supplies"},
    {"id": 4, "name": "Accommodation"},
    {"id": 5, "name": "Other"},
]

INITIAL_STATUSES = [
    {"id": 1, "name": "Draft"},
    {"id": 2, "name": "Submitted"},
    {"id": 3, "name": "Approved"},
    {"id": 4, "name": "Rejected"},
]


def create_engine_for(database_url: str) -> AsyncEngine:
    """Create the async engine for a database URL.

    In-memory SQLite needs a single shared connection, otherwise every
    session would see its own empty database.
    """
    if database_url.startswith("sqlite") and ":memory:" in database_url:
        return create_async_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_async_engine(database_url, echo=False, pool_pre_ping=True)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_db(engine: AsyncEngine, seed: bool = True) -> None:
    """Create tables and, when empty, load the reference data."""
    from . import models  # noqa: F401  registers the mappers on Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    if seed:
        await seed_reference_data(create_session_factory(engine))


async def seed_reference_data(session_factory: async_sessionmaker[AsyncSession]) -> None:
    from . import models

    async with session_factory() as session:
        existing = await session.scalar(select(func.count()).select_from(models.ExpenseStatus))
        if existing:
            logger.debug("Reference data already present, skipping seed")
            return

        session.add_all(models.Role(**row) for row in INITIAL_ROLES)
        session.add_all(models.ExpenseStatus(**row) for row in INITIAL_STATUSES)
        session.add_all(models.ExpenseCategory(**row) for row in INITIAL_CATEGORIES)
        await session.flush()
        # Bob first so Alice's manager reference resolves
        for row in sorted(INITIAL_USERS, key=lambda r: r["manager_id"] is not None):
            session.add(models.User(**row))
            await session.flush()
        await session.commit()
        logger.info(
            "Seeded reference data: %d roles, %d users, %d categories, %d statuses",
            len(INITIAL_ROLES), len(INITIAL_USERS), len(INITIAL_CATEGORIES), len(INITIAL_STATUSES),
        )
