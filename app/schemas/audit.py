"""
NapKeeper - Schemas: Auditoría
"""
from pydantic import BaseModel
from typing import Any, Dict, List, Optional
from datetime import datetime
from app.models.audit import AuditAction


class AuditRecordResponse(BaseModel):
    id: int
    table_name: str
    record_id: str
    action: AuditAction
    before_data: Optional[Dict[str, Any]]
    after_data: Optional[Dict[str, Any]]
    actor_id: int
    actor_name: Optional[str] = None
    actor_email: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class FieldChange(BaseModel):
    field: str
    old_value: Any = None
    new_value: Any = None


class AuditHistoryItem(AuditRecordResponse):
    changes: List[FieldChange] = []


class ActorCount(BaseModel):
    actor_id: int
    full_name: Optional[str] = None
    email: Optional[str] = None
    count: int


class AuditStatsResponse(BaseModel):
    total_changes: int
    by_action: Dict[str, int]
    by_table: Dict[str, int]
    by_actor: List[ActorCount]


class TrackedTableResponse(BaseModel):
    table_name: str
    total_changes: int
    last_change: Optional[datetime] = None
