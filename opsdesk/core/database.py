from sqlalchemy.ext.asyncio import create_async_engine,async_sessionmaker,AsyncSession
from sqlalchemy.engine import make_url
from sqlalchemy.orm import declarative_base
from sqlalchemy import text
from opsdesk.core.config import settings
from loguru import logger
import asyncio
from typing import AsyncGenerator

Base=declarative_base()

async_engine=None
AsyncSessionLocal=None


def build_engine(database_url: str, echo: bool = False):
    """Creates an async engine, applying pool settings only where the driver pools connections."""
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        return create_async_engine(database_url, echo=echo)
    return create_async_engine(
        database_url,
        echo=echo,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        pool_timeout=settings.DATABASE_POOL_TIMEOUT,
        pool_pre_ping=True # Ensures connections are alive
    )


def build_sessionmaker(engine) -> async_sessionmaker:
    return async_sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False # Services hand ORM rows back to endpoints after commit
    )


async def _ensure_postgres_database(server_url: str):
    """Creates POSTGRES_DB on the server if it does not exist yet (local development)."""
    temp_engine=create_async_engine(server_url,echo=False,pool_pre_ping=True)
    try:
        async with temp_engine.execution_options(isolation_level="AUTOCOMMIT").connect() as conn:
            result = await conn.execute(
                text("SELECT 1 FROM pg_database WHERE datname = :name"),
                {"name": settings.POSTGRES_DB},
            )
            db_exists = result.scalar_one_or_none()

            if not db_exists:
                logger.info(f"Database '{settings.POSTGRES_DB}' does not exist. Creating it...")
                await conn.execute(text(f'CREATE DATABASE "{settings.POSTGRES_DB}"'))
                logger.info(f"Database '{settings.POSTGRES_DB}' created.")
            else:
                logger.info(f"Database '{settings.POSTGRES_DB}' already exists.")
    finally:
        await temp_engine.dispose()


async def init_db():
    """
    Initializes the database engine and creates tables if they don't exist.
    On PostgreSQL with POSTGRES_DB set, the database itself is created first,
    which is useful for local development setup.
    """
    global async_engine,AsyncSessionLocal
    if async_engine is not None:
        logger.info("Database engine already initialized.")
        return

    server_url = settings.DATABASE_URL
    is_postgres = make_url(server_url).get_backend_name() == "postgresql"

    max_retries=settings.DATABASE_CONNECT_RETRIES
    retry_delay=settings.DATABASE_CONNECT_RETRY_DELAY

    # Registers every table on Base.metadata
    from opsdesk.models import account, persona, staff, sop_template, work_task  # noqa: F401

    for i in range(max_retries):
        try:
            if is_postgres and settings.POSTGRES_DB:
                await _ensure_postgres_database(server_url)

            engine = build_engine(server_url, echo=settings.DATABASE_ECHO_SQL)
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

            async_engine = engine
            AsyncSessionLocal = build_sessionmaker(engine)
            logger.info("Database tables initialized successfully (or already existed).")
            break

        except Exception as e:
            logger.error(f"Failed to connect to database or create tables (Attempt {i+1}/{max_retries}): {e}")
            if i < max_retries - 1:
                logger.info(f"Retrying database connection in {retry_delay} seconds...")
                await asyncio.sleep(retry_delay)
            else:
                logger.critical("Maximum database connection retries reached. Exiting startup.")
                raise

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency that provides an asynchronous database session.
    It ensures the session is closed after the request.
    """
    if AsyncSessionLocal is None:
        logger.error("AsyncSessionLocal is not initialized. Calling init_db...")
        await init_db()
        if AsyncSessionLocal is None:
            raise RuntimeError("Database session local could not be initialized.")

    db = AsyncSessionLocal()
    try:
        yield db
    finally:
        await db.close()


async def dispose_db():
    """Disposes the database engine connections."""
    global async_engine,AsyncSessionLocal
    if async_engine:
        await async_engine.dispose()
        async_engine = None
        AsyncSessionLocal = None
        logger.info("Database engine connections disposed.")
