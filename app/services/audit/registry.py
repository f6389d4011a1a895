"""
NapKeeper - Registro estático de entidades auditadas
La lista completa vive aquí y se registra una sola vez al importar el módulo.
Para auditar una entidad nueva, agregarla a TRACKED_ENTITIES.
"""
from app.models.user import User
from app.models.network import Nap, NapPort
from app.models.client import Client
from app.models.plan import ServicePlan
from app.models.connection import Connection
from app.services.audit.ledger import AuditLedger
from app.services.audit.interceptor import MutationInterceptor

# (modelo, nombre en bitácora, columnas extra que no se guardan)
TRACKED_ENTITIES = (
    (User, "users", ("hashed_password",)),
    (Nap, "naps", ()),
    (NapPort, "nap_ports", ()),
    (Client, "clients", ()),
    (ServicePlan, "service_plans", ()),
    (Connection, "connections", ()),
)


def build_interceptor(ledger: AuditLedger | None = None) -> MutationInterceptor:
    interceptor = MutationInterceptor(ledger or AuditLedger())
    for model, table_name, exclude in TRACKED_ENTITIES:
        interceptor.register(model, table_name, exclude=exclude)
    return interceptor


audit_ledger = AuditLedger()
interceptor = build_interceptor(audit_ledger)
