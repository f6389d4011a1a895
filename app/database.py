"""
NapKeeper - Conexión a base de datos (SQLAlchemy async)
Engine, fábrica de sesiones y Base declarativa.
"""
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from app.config import get_settings

settings = get_settings()

engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DATABASE_ECHO,
    pool_pre_ping=True,
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


async def get_db():
    """Una sesión por request. El commit lo hace la unidad de trabajo de cada operación."""
    async with AsyncSessionLocal() as session:
        yield session
