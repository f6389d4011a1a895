import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.database import Base, get_db
from app.middleware.auth import create_access_token, hash_password
from app.models import AuditRecord, NapPort, ServicePlan, User, UserRole
from app.services import network_service


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # pysqlite/aiosqlite no emiten BEGIN por su cuenta: sin esto no hay SAVEPOINTs reales
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


# ========== DATOS BASE ==========

async def _user(db, email, role, name):
    user = User(
        email=email,
        full_name=name,
        hashed_password=hash_password("secret123"),
        role=role,
        is_active=True,
    )
    db.add(user)
    await db.commit()
    return user


@pytest.fixture
async def actor(db):
    return await _user(db, "admin@napkeeper.test", UserRole.ADMIN, "Ana Admin")


@pytest.fixture
async def technician(db):
    return await _user(db, "tecnico@napkeeper.test", UserRole.TECHNICIAN, "Tomás Técnico")


@pytest.fixture
async def plan(db):
    plan = ServicePlan(name="Fibra 100", bandwidth_mbps=100, description="Plan residencial")
    db.add(plan)
    await db.commit()
    return plan


@pytest.fixture
async def plan2(db):
    plan = ServicePlan(name="Fibra 300", bandwidth_mbps=300, description="Plan empresarial")
    db.add(plan)
    await db.commit()
    return plan


def nap_data(code="NAP-001", total_ports=4):
    return {
        "code": code,
        "model": "Huawei 16P",
        "firmware": "V1.2",
        "location": "Av. Siempre Viva 742",
        "total_ports": total_ports,
        "latitude": -12.04637400,
        "longitude": -77.04279300,
    }


@pytest.fixture
async def nap(db):
    """NAP de 4 puertos FREE, creado sin actor (no deja auditoría)."""
    return await network_service.create_nap(db, nap_data(), actor_id=None)


@pytest.fixture
async def ports(db, nap):
    result = await db.execute(
        select(NapPort).where(NapPort.nap_id == nap.id).order_by(NapPort.port_number)
    )
    ports = list(result.scalars().all())
    # Libera la conexión compartida (StaticPool) para las sesiones de los requests
    await db.commit()
    return ports


def client_data(document="DNI-001", **overrides):
    data = {
        "document_number": document,
        "first_name": "Carla",
        "last_name": "Pérez",
        "phone": "999111222",
        "email": f"{document.lower()}@mail.test",
        "address": "Jr. Los Olivos 123",
    }
    data.update(overrides)
    return data


# ========== HELPERS ==========

async def fresh(db, model, ident):
    """Relee la fila ignorando el estado en memoria de la sesión."""
    result = await db.execute(
        select(model).where(model.id == ident).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def audit_rows(db, table_name=None):
    q = select(AuditRecord).order_by(AuditRecord.id)
    if table_name:
        q = q.where(AuditRecord.table_name == table_name)
    return list((await db.execute(q)).scalars().all())


# ========== API ==========

@pytest.fixture
async def api(session_factory):
    from app.main import app

    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(user.id, user.role.value)}"}
