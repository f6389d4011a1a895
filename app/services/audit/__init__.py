"""
NapKeeper - Auditoría
Bitácora append-only + interceptor de mutaciones sobre las entidades registradas.
"""
from app.services.audit.ledger import AuditLedger, AuditFilters, normalize_value, normalize_snapshot
from app.services.audit.interceptor import MutationInterceptor, TrackedEntity
from app.services.audit.registry import TRACKED_ENTITIES, build_interceptor, audit_ledger, interceptor

__all__ = [
    "AuditLedger",
    "AuditFilters",
    "normalize_value",
    "normalize_snapshot",
    "MutationInterceptor",
    "TrackedEntity",
    "TRACKED_ENTITIES",
    "build_interceptor",
    "audit_ledger",
    "interceptor",
]
