"""
Database session management
"""
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool, StaticPool
import re
import ssl

from verifylens.core.config import settings


def normalize_database_url(url: str) -> str:
    """
    Convert a database URL to its async driver form

    Args:
        url: Database URL from configuration

    Returns:
        URL usable by create_async_engine
    """
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        # asyncpg takes ssl as a connect arg, not a URL parameter
        if "sslmode=" in url:
            url = re.sub(r'[\?&]sslmode=[^&]*', '', url)
            url = url.rstrip('?&')
    return url


def build_engine(url: str):
    """
    Create async engine with settings appropriate for the backend

    Args:
        url: Database URL
    """
    database_url = normalize_database_url(url)

    if "sqlite" in database_url:
        return create_async_engine(
            database_url,
            echo=False,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool if ":memory:" in database_url else None,
        )

    ssl_context = ssl.create_default_context()
    ssl_context.check_hostname = False
    ssl_context.verify_mode = ssl.CERT_NONE

    return create_async_engine(
        database_url,
        echo=False,
        future=True,
        pool_pre_ping=True,
        poolclass=NullPool,
        connect_args={"ssl": ssl_context},
    )


def build_session_factory(bind) -> async_sessionmaker:
    """Create an async session factory bound to an engine"""
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = build_engine(settings.DATABASE_URL)

# Create async session factory
AsyncSessionLocal = build_session_factory(engine)
