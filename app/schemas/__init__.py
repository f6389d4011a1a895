"""
NapKeeper - Schemas
"""
from app.schemas.common import PaginatedResponse, MessageResponse, ErrorDetail, page_count
from app.schemas.auth import LoginRequest, TokenResponse, RefreshRequest, UserResponse
from app.schemas.client import ClientData, ClientResponse, ClientDeleteResponse
from app.schemas.network import (
    NapCreate, NapStatusUpdate, NapResponse, NapOccupancyResponse, NapListItem,
    NapPortUpdate, NapPortResponse, NapPortDetailResponse, NapPortsResponse,
    CapacityAlertResponse, CapacityScanResponse,
)
from app.schemas.connection import (
    ConnectionCreate, ConnectionTransition, ConnectionResponse, ConnectionDetailResponse,
)
from app.schemas.audit import (
    AuditRecordResponse, AuditHistoryItem, FieldChange, ActorCount,
    AuditStatsResponse, TrackedTableResponse,
)
