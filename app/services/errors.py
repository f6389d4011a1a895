"""
NapKeeper - Errores del núcleo de asignación
Taxonomía estable: NotFound, Conflict, ValidationFailed, Internal.
Cada error aborta la unidad de trabajo (rollback completo) y llega al cliente
tal cual, con su código estable y un mensaje legible.
"""
from fastapi import HTTPException


class CoreError(Exception):
    """Base de los errores de negocio del núcleo."""
    kind = "internal"
    code = "internal_error"
    status_code = 500

    def __init__(self, message: str = "Error interno"):
        super().__init__(message)
        self.message = message

    def to_detail(self) -> dict:
        return {"error": self.code, "kind": self.kind, "message": self.message}


# ---------- NotFound ----------

class NotFoundError(CoreError):
    kind = "not_found"
    code = "not_found"
    status_code = 404


class PortNotFound(NotFoundError):
    code = "port_not_found"

    def __init__(self, port_id):
        super().__init__(f"Puerto {port_id} no encontrado")


class PlanNotFound(NotFoundError):
    code = "plan_not_found"

    def __init__(self, plan_id):
        super().__init__(f"Plan {plan_id} no encontrado")


class ConnectionNotFound(NotFoundError):
    code = "connection_not_found"

    def __init__(self, connection_id):
        super().__init__(f"Conexión {connection_id} no encontrada")


class ClientNotFound(NotFoundError):
    code = "client_not_found"

    def __init__(self, client_id):
        super().__init__(f"Cliente {client_id} no encontrado")


class NapNotFound(NotFoundError):
    code = "nap_not_found"

    def __init__(self, nap_id):
        super().__init__(f"NAP {nap_id} no encontrado")


# ---------- Conflict ----------

class ConflictError(CoreError):
    kind = "conflict"
    code = "conflict"
    status_code = 409


class PortUnavailable(ConflictError):
    code = "port_unavailable"


class AlreadyFinalized(ConflictError):
    code = "already_finalized"

    def __init__(self, connection_id):
        super().__init__(f"La conexión {connection_id} ya está finalizada")


class DuplicateKey(ConflictError):
    code = "duplicate_key"


class PortStateConflict(ConflictError):
    code = "port_state_conflict"


# ---------- Validation / Internal ----------

class ValidationFailed(CoreError):
    kind = "validation_failed"
    code = "validation_failed"
    status_code = 422


class InternalError(CoreError):
    pass


def http_error(exc: CoreError) -> HTTPException:
    """Convierte un error del núcleo en la respuesta HTTP del router."""
    return HTTPException(status_code=exc.status_code, detail=exc.to_detail())
