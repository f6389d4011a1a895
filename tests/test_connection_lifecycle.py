from datetime import date

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from app.models import (
    AuditAction, Client, Connection, ConnectionStatus, Nap, NapPort, NapStatus, PortStatus,
)
from app.services import connection_lifecycle
from app.services.errors import (
    AlreadyFinalized, ClientNotFound, ConnectionNotFound, DuplicateKey, PlanNotFound, PortNotFound,
    PortUnavailable, ValidationFailed,
)
from tests.conftest import audit_rows, client_data, fresh


async def _count(db, model):
    return await db.scalar(select(func.count(model.id)))


# ========== ASIGNAR ==========

async def test_allocate_occupies_port_and_creates_client(db, actor, plan, ports):
    conn = await connection_lifecycle.allocate(db, ports[0].id, client_data(), plan.id, actor.id)

    assert conn.status == ConnectionStatus.ACTIVE
    assert conn.start_date == date.today()
    assert conn.created_by == actor.id
    assert (await fresh(db, NapPort, ports[0].id)).status == PortStatus.OCCUPIED

    client = await fresh(db, Client, conn.client_id)
    assert client.document_number == "DNI-001"
    assert client.full_name == "Carla Pérez"


async def test_allocate_with_suspended_initial_status(db, actor, plan, ports):
    conn = await connection_lifecycle.allocate(
        db, ports[0].id, client_data(), plan.id, actor.id,
        start_date=date(2024, 1, 15), initial_status=ConnectionStatus.SUSPENDED,
    )
    assert conn.status == ConnectionStatus.SUSPENDED
    assert conn.start_date == date(2024, 1, 15)
    assert (await fresh(db, NapPort, ports[0].id)).status == PortStatus.OCCUPIED


async def test_allocate_rejects_finalized_initial_status(db, actor, plan, ports):
    with pytest.raises(ValidationFailed):
        await connection_lifecycle.allocate(
            db, ports[0].id, client_data(), plan.id, actor.id,
            initial_status=ConnectionStatus.FINALIZED,
        )


async def test_allocate_existing_client_updates_changed_contact_fields(db, actor, plan, ports):
    await connection_lifecycle.allocate(db, ports[0].id, client_data(phone="111"), plan.id, actor.id)
    conn = await connection_lifecycle.allocate(db, ports[1].id, client_data(phone="222"), plan.id, actor.id)

    assert await _count(db, Client) == 1
    assert (await fresh(db, Client, conn.client_id)).phone == "222"

    updates = [r for r in await audit_rows(db, "clients") if r.action == AuditAction.UPDATE]
    assert len(updates) == 1
    assert updates[0].before_data == {"phone": "111"}
    assert updates[0].after_data == {"phone": "222"}


async def test_allocate_new_client_requires_first_name(db, actor, plan, ports):
    port_id = ports[0].id
    data = client_data()
    del data["first_name"]
    with pytest.raises(ValidationFailed):
        await connection_lifecycle.allocate(db, port_id, data, plan.id, actor.id)
    assert await _count(db, Client) == 0
    assert (await fresh(db, NapPort, port_id)).status == PortStatus.FREE


async def test_allocate_on_occupied_port_changes_nothing(db, actor, plan, ports):
    await connection_lifecycle.allocate(db, ports[0].id, client_data("DNI-A"), plan.id, actor.id)
    audit_before = len(await audit_rows(db))

    with pytest.raises(PortUnavailable):
        await connection_lifecycle.allocate(db, ports[0].id, client_data("DNI-B"), plan.id, actor.id)

    assert await _count(db, Client) == 1
    assert await _count(db, Connection) == 1
    assert len(await audit_rows(db)) == audit_before


async def test_allocate_on_maintenance_port_is_rejected(db, actor, plan, ports):
    port = await fresh(db, NapPort, ports[0].id)
    port.status = PortStatus.MAINTENANCE
    await db.commit()

    with pytest.raises(PortUnavailable):
        await connection_lifecycle.allocate(db, port.id, client_data(), plan.id, actor.id)


async def test_allocate_unknown_port(db, actor, plan):
    with pytest.raises(PortNotFound):
        await connection_lifecycle.allocate(db, 9999, client_data(), plan.id, actor.id)


async def test_allocate_unknown_plan_is_atomic(db, actor, ports):
    port_id = ports[0].id
    with pytest.raises(PlanNotFound):
        await connection_lifecycle.allocate(db, port_id, client_data(), 9999, actor.id)

    assert await _count(db, Client) == 0
    assert await _count(db, Connection) == 0
    assert (await fresh(db, NapPort, port_id)).status == PortStatus.FREE
    assert await audit_rows(db) == []


async def test_allocate_refuses_free_port_that_still_has_live_connection(db, actor, plan, ports):
    # Dato inconsistente: puerto FREE con una conexión ACTIVE colgando
    client = Client(document_number="DNI-X", first_name="Xavier")
    db.add(client)
    await db.flush()
    db.add(Connection(
        port_id=ports[0].id, client_id=client.id, plan_id=plan.id,
        start_date=date.today(), status=ConnectionStatus.ACTIVE,
    ))
    await db.commit()

    with pytest.raises(PortUnavailable):
        await connection_lifecycle.allocate(db, ports[0].id, client_data(), plan.id, actor.id)


async def test_storage_rejects_second_live_connection_on_port(db, plan, ports):
    client = Client(document_number="DNI-X", first_name="Xavier")
    db.add(client)
    await db.flush()
    for _ in range(2):
        db.add(Connection(
            port_id=ports[0].id, client_id=client.id, plan_id=plan.id,
            start_date=date.today(), status=ConnectionStatus.ACTIVE,
        ))
    with pytest.raises(IntegrityError):
        await db.flush()
    await db.rollback()


async def test_allocate_maps_live_port_index_violation_to_port_unavailable(db, actor, plan, ports, monkeypatch):
    # Otra sesión dejó una conexión viva después del chequeo previo (SQLite ignora FOR UPDATE)
    port_id = ports[0].id
    client = Client(document_number="DNI-X", first_name="Xavier")
    db.add(client)
    await db.flush()
    db.add(Connection(
        port_id=port_id, client_id=client.id, plan_id=plan.id,
        start_date=date.today(), status=ConnectionStatus.ACTIVE,
    ))
    await db.commit()

    async def _no_live_connection(session, ident):
        return None

    monkeypatch.setattr(connection_lifecycle, "live_connection", _no_live_connection)

    with pytest.raises(PortUnavailable):
        await connection_lifecycle.allocate(db, port_id, client_data(), plan.id, actor.id)

    assert await _count(db, Client) == 1
    assert await _count(db, Connection) == 1
    assert (await fresh(db, NapPort, port_id)).status == PortStatus.FREE
    assert await audit_rows(db) == []


async def test_duplicate_document_number_maps_to_duplicate_key(db):
    db.add(Client(document_number="DNI-X", first_name="Xavier"))
    await db.commit()

    db.add(Client(document_number="DNI-X", first_name="Otro"))
    with pytest.raises(IntegrityError) as exc_info:
        await db.flush()
    await db.rollback()

    error = connection_lifecycle.conflict_from_integrity(exc_info.value)
    assert isinstance(error, DuplicateKey)
    assert "documento" in error.message


async def test_duplicate_nap_code_maps_to_duplicate_key(db, nap):
    db.add(Nap(
        code="NAP-001", model="Huawei 16P", location="Calle 1", total_ports=2,
        latitude=-12.0, longitude=-77.0, status=NapStatus.ACTIVE,
    ))
    with pytest.raises(IntegrityError) as exc_info:
        await db.flush()
    await db.rollback()

    error = connection_lifecycle.conflict_from_integrity(exc_info.value)
    assert isinstance(error, DuplicateKey)
    assert "NAP" in error.message


async def test_storage_allows_many_finalized_connections_on_port(db, plan, ports):
    client = Client(document_number="DNI-X", first_name="Xavier")
    db.add(client)
    await db.flush()
    for status in (ConnectionStatus.FINALIZED, ConnectionStatus.FINALIZED, ConnectionStatus.ACTIVE):
        db.add(Connection(
            port_id=ports[0].id, client_id=client.id, plan_id=plan.id,
            start_date=date.today(), status=status,
        ))
    await db.commit()
    assert await _count(db, Connection) == 3


# ========== TRANSICIONES ==========

async def test_suspend_and_reactivate_keep_port_occupied(db, actor, plan, ports):
    conn = await connection_lifecycle.allocate(db, ports[0].id, client_data(), plan.id, actor.id)

    conn = await connection_lifecycle.transition(db, conn.id, ConnectionStatus.SUSPENDED, actor.id)
    assert conn.status == ConnectionStatus.SUSPENDED
    assert (await fresh(db, NapPort, ports[0].id)).status == PortStatus.OCCUPIED

    conn = await connection_lifecycle.transition(db, conn.id, ConnectionStatus.ACTIVE, actor.id)
    assert conn.status == ConnectionStatus.ACTIVE
    assert (await fresh(db, NapPort, ports[0].id)).status == PortStatus.OCCUPIED


async def test_finalize_frees_port_and_stamps_end_date(db, actor, plan, ports):
    conn = await connection_lifecycle.allocate(db, ports[0].id, client_data(), plan.id, actor.id)

    conn = await connection_lifecycle.finalize(db, conn.id, actor.id)

    assert conn.status == ConnectionStatus.FINALIZED
    assert conn.end_date == date.today()
    assert (await fresh(db, NapPort, ports[0].id)).status == PortStatus.FREE


async def test_finalize_keeps_explicit_end_date(db, actor, plan, ports):
    conn = await connection_lifecycle.allocate(db, ports[0].id, client_data(), plan.id, actor.id)
    conn = await connection_lifecycle.transition(
        db, conn.id, ConnectionStatus.FINALIZED, actor.id, end_date=date(2030, 5, 1),
    )
    assert conn.end_date == date(2030, 5, 1)


async def test_finalize_writes_connection_audit_before_port_audit(db, actor, plan, ports):
    conn = await connection_lifecycle.allocate(db, ports[0].id, client_data(), plan.id, actor.id)
    already = len(await audit_rows(db))

    await connection_lifecycle.finalize(db, conn.id, actor.id)

    new = (await audit_rows(db))[already:]
    assert [r.table_name for r in new] == ["connections", "nap_ports"]
    assert new[0].after_data["status"] == "finalized"
    assert new[1].before_data == {"status": "occupied"}
    assert new[1].after_data == {"status": "free"}


async def test_finalized_connection_is_terminal(db, actor, plan, ports):
    port_id, actor_id = ports[0].id, actor.id
    conn = await connection_lifecycle.allocate(db, port_id, client_data(), plan.id, actor_id)
    conn_id = conn.id
    await connection_lifecycle.finalize(db, conn_id, actor_id)
    already = len(await audit_rows(db))

    for status in ConnectionStatus:
        with pytest.raises(AlreadyFinalized):
            await connection_lifecycle.transition(db, conn_id, status, actor_id)

    assert (await fresh(db, Connection, conn_id)).status == ConnectionStatus.FINALIZED
    assert (await fresh(db, NapPort, port_id)).status == PortStatus.FREE
    assert len(await audit_rows(db)) == already


async def test_same_state_plan_change_audits_only_plan_id(db, actor, plan, plan2, ports):
    conn = await connection_lifecycle.allocate(db, ports[0].id, client_data(), plan.id, actor.id)
    already = len(await audit_rows(db))

    conn = await connection_lifecycle.transition(
        db, conn.id, ConnectionStatus.ACTIVE, actor.id, plan_id=plan2.id,
    )

    assert conn.plan_id == plan2.id
    new = (await audit_rows(db))[already:]
    assert len(new) == 1
    assert new[0].table_name == "connections"
    assert new[0].action == AuditAction.UPDATE
    assert new[0].before_data == {"plan_id": plan.id}
    assert new[0].after_data == {"plan_id": plan2.id}


async def test_same_state_without_changes_writes_nothing(db, actor, plan, ports):
    conn = await connection_lifecycle.allocate(db, ports[0].id, client_data(), plan.id, actor.id)
    already = len(await audit_rows(db))

    await connection_lifecycle.transition(db, conn.id, ConnectionStatus.ACTIVE, actor.id)

    assert len(await audit_rows(db)) == already


async def test_transition_unknown_plan_changes_nothing(db, actor, plan, ports):
    port_id = ports[0].id
    conn = await connection_lifecycle.allocate(db, port_id, client_data(), plan.id, actor.id)
    conn_id = conn.id

    with pytest.raises(PlanNotFound):
        await connection_lifecycle.transition(
            db, conn_id, ConnectionStatus.FINALIZED, actor.id, plan_id=9999,
        )

    assert (await fresh(db, Connection, conn_id)).status == ConnectionStatus.ACTIVE
    assert (await fresh(db, NapPort, port_id)).status == PortStatus.OCCUPIED


async def test_transition_unknown_connection(db, actor):
    with pytest.raises(ConnectionNotFound):
        await connection_lifecycle.transition(db, 9999, ConnectionStatus.SUSPENDED, actor.id)


# ========== LIBERAR ==========

async def test_release_finalizes_live_connection(db, actor, plan, ports):
    conn = await connection_lifecycle.allocate(db, ports[0].id, client_data(), plan.id, actor.id)

    port = await connection_lifecycle.release(db, ports[0].id, actor.id)

    assert port.status == PortStatus.FREE
    conn = await fresh(db, Connection, conn.id)
    assert conn.status == ConnectionStatus.FINALIZED
    assert conn.end_date == date.today()


async def test_release_free_port_is_noop(db, actor, ports):
    port = await connection_lifecycle.release(db, ports[0].id, actor.id)
    port = await connection_lifecycle.release(db, ports[0].id, actor.id)

    assert port.status == PortStatus.FREE
    assert await audit_rows(db) == []


async def test_release_unknown_port(db, actor):
    with pytest.raises(PortNotFound):
        await connection_lifecycle.release(db, 9999, actor.id)


# ========== BAJA DE CLIENTE ==========

async def test_delete_client_finalizes_live_connections(db, actor, plan, nap, ports):
    c1 = await connection_lifecycle.allocate(db, ports[0].id, client_data(), plan.id, actor.id)
    c2 = await connection_lifecycle.allocate(db, ports[1].id, client_data(), plan.id, actor.id)
    c3 = await connection_lifecycle.allocate(db, ports[2].id, client_data(), plan.id, actor.id)
    await connection_lifecycle.finalize(db, c3.id, actor.id)
    client_id = c1.client_id

    finalized = await connection_lifecycle.delete_client(db, client_id, actor.id)

    assert finalized == 2
    assert await fresh(db, Client, client_id) is None
    for conn_id in (c1.id, c2.id, c3.id):
        conn = await fresh(db, Connection, conn_id)
        assert conn.status == ConnectionStatus.FINALIZED
        assert conn.client_id is None
    for port in ports:
        assert (await fresh(db, NapPort, port.id)).status == PortStatus.FREE

    deletes = [r for r in await audit_rows(db, "clients") if r.action == AuditAction.DELETE]
    assert len(deletes) == 1
    assert deletes[0].before_data["document_number"] == "DNI-001"
    assert deletes[0].after_data is None


async def test_delete_client_clears_saturation(db, actor, plan, nap, ports):
    for port in ports:
        conn = await connection_lifecycle.allocate(db, port.id, client_data(), plan.id, actor.id)
    assert (await fresh(db, Nap, nap.id)).status == NapStatus.SATURATED

    assert await connection_lifecycle.delete_client(db, conn.client_id, actor.id) == 4
    assert (await fresh(db, Nap, nap.id)).status == NapStatus.ACTIVE


async def test_delete_client_ignores_port_reallocated_by_another_session(db, session_factory, actor, plan, ports):
    actor_id, port_id = actor.id, ports[0].id
    conn = await connection_lifecycle.allocate(db, port_id, client_data("DNI-X"), plan.id, actor_id)
    client_id, conn_id = conn.client_id, conn.id

    # En otra sesión: se libera el puerto y se asigna a otro cliente
    async with session_factory() as other:
        await connection_lifecycle.release(other, port_id, actor_id)
        reassigned = await connection_lifecycle.allocate(
            other, port_id, client_data("DNI-Y"), plan.id, actor_id
        )
        reassigned_id = reassigned.id

    # La sesión original todavía ve la conexión como ACTIVE en memoria
    assert conn.status == ConnectionStatus.ACTIVE
    assert await connection_lifecycle.delete_client(db, client_id, actor_id) == 0

    assert (await fresh(db, NapPort, port_id)).status == PortStatus.OCCUPIED
    assert (await fresh(db, Connection, reassigned_id)).status == ConnectionStatus.ACTIVE
    old = await fresh(db, Connection, conn_id)
    assert old.status == ConnectionStatus.FINALIZED
    assert old.client_id is None
    finalize_updates = [
        r for r in await audit_rows(db, "connections")
        if r.record_id == str(conn_id) and (r.after_data or {}).get("status") == "finalized"
    ]
    assert len(finalize_updates) == 1


async def test_delete_unknown_client(db, actor):
    with pytest.raises(ClientNotFound):
        await connection_lifecycle.delete_client(db, 9999, actor.id)
