"""
NapKeeper - Punto de entrada FastAPI
Asignación de puertos NAP con bitácora de auditoría.
"""
import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from app.config import get_settings
from app.database import engine, Base

# Routers
from app.routers.auth import router as auth_router
from app.routers.clients import router as clients_router
from app.routers.connections import router as connections_router
from app.routers.ports import router as ports_router
from app.routers.naps import router as naps_router
from app.routers.audit import router as audit_router

# Importar modelos para que se registren
from app.models import *  # noqa

settings = get_settings()

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("napkeeper")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Crea las tablas al iniciar (en desarrollo). En prod usar Alembic."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"{settings.APP_NAME} v{settings.APP_VERSION} iniciado")
    yield
    await engine.dispose()
    logger.info(f"{settings.APP_NAME} detenido")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Asignación de puertos NAP con bitácora de auditoría",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Registrar routers
app.include_router(auth_router)
app.include_router(clients_router)
app.include_router(connections_router, prefix="/api/v1")
app.include_router(ports_router, prefix="/api/v1")
app.include_router(naps_router, prefix="/api/v1")
app.include_router(audit_router, prefix="/api/v1")


@app.get("/")
async def root():
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "docs": "/docs"
    }
