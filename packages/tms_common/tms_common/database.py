import os
from contextlib import asynccontextmanager
from typing import AsyncIterator
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker, declarative_base

# Base declarativa de los modelos del TMS
Base = declarative_base()

def engine_options(database_url: str) -> dict:
    """Opciones del motor según el driver (SQLite no usa pool de conexiones)."""
    if database_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}

class DatabaseManager:
    """Motor async y fábrica de sesiones compartidos por la API y el scheduler."""

    def __init__(self, database_url: str, echo: bool = None):
        self.database_url = database_url
        # SQL en consola solo en ENV_MODE=dev
        if echo is None:
            echo = os.getenv("ENV_MODE", "dev") == "dev"

        self.engine = create_async_engine(database_url, echo=echo, **engine_options(database_url))
        self.session_factory = sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)

    async def get_db(self) -> AsyncIterator[AsyncSession]:
        """Dependencia FastAPI: una sesión por petición."""
        async with self.session_factory() as session:
            yield session

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Sesión para trabajos fuera de una petición (recordatorios)."""
        async with self.session_factory() as session:
            yield session

    async def dispose(self):
        await self.engine.dispose()
