"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from domain.agenda import Agenda
from domain.chat import ChatChannel, ChatMessage
from domain.lead import Lead
from domain.operation_log import OperationLog
from domain.task import DirectTask
from domain.transfer import TransferRequest


# ============================================================================
# Lead Models
# ============================================================================

class LeadPayload(BaseModel):
    """A lead candidate to claim (manual entry, import row or discovery result)."""
    id: Optional[str] = Field(None, description="Keep the candidate id; generated when omitted")
    name: str = Field(..., min_length=1)
    category: Optional[str] = None
    location: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    contact_name: Optional[str] = None
    notes: Optional[str] = None
    extras: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        json_schema_extra = {
            "example": {
                "name": "Acme Bar",
                "category": "Bar",
                "location": "Palermo Hollywood, CABA",
                "phone": "+54 11 5555-0000",
                "contact_name": "Laura",
            }
        }


class LeadUpdate(BaseModel):
    """Partial update; keys are lead attributes or stored field names."""
    changes: Dict[str, Any] = Field(..., min_length=1)
    context: Optional[str] = Field(None, description="What was edited, for the operation log")

    class Config:
        json_schema_extra = {
            "example": {
                "changes": {"status": "contacted", "nextAction": "call", "nextActionDate": "2026-10-21"},
                "context": "follow-up",
            }
        }


class LeadResponse(BaseModel):
    id: str
    name: str
    status: str
    owner: Optional[str] = None
    category: Optional[str] = None
    location: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    contact_name: Optional[str] = None
    notes: Optional[str] = None
    next_action: Optional[str] = None
    next_action_date: Optional[str] = None
    last_contact_date: Optional[str] = None
    saved_at: Optional[datetime] = None
    is_client: bool = False
    sale_value: Optional[float] = None
    price_list: Optional[str] = None
    extras: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_domain(cls, lead: Lead) -> "LeadResponse":
        return cls(
            id=lead.lead_id,
            name=lead.name,
            status=lead.status.value,
            owner=lead.owner,
            category=lead.category,
            location=lead.location,
            phone=lead.phone,
            email=lead.email,
            contact_name=lead.contact_name,
            notes=lead.notes,
            next_action=lead.next_action,
            next_action_date=lead.next_action_date,
            last_contact_date=lead.last_contact_date,
            saved_at=lead.saved_at,
            is_client=lead.is_client,
            sale_value=lead.sale_value,
            price_list=lead.price_list,
            extras=dict(lead.extras),
        )


class LeadListResponse(BaseModel):
    items: List[LeadResponse]
    total_count: int


class CandidateStatusResponse(BaseModel):
    """Whether a discovery result is free, already yours, or locked by someone else."""
    state: str
    owner: Optional[str] = None


class ClaimConflictResponse(BaseModel):
    name: str
    owner: Optional[str] = None
    message: str


class BulkClaimResponse(BaseModel):
    claimed: List[LeadResponse]
    conflicts: List[ClaimConflictResponse]


class ReassignRequest(BaseModel):
    new_owner: str = Field(..., min_length=1)


# ============================================================================
# Transfer Models
# ============================================================================

class ResolveTransferRequest(BaseModel):
    accept: bool


class TransferResponse(BaseModel):
    id: str
    lead_id: str
    lead_name: str
    from_user: str
    to_user: str
    status: str
    created_at: datetime
    resolved_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, request: TransferRequest) -> "TransferResponse":
        return cls(
            id=request.request_id,
            lead_id=request.lead_id,
            lead_name=request.lead_name,
            from_user=request.from_user,
            to_user=request.to_user,
            status=request.status.value,
            created_at=request.created_at,
            resolved_at=request.resolved_at,
        )


class TransferResolutionResponse(BaseModel):
    request: TransferResponse
    lead: Optional[LeadResponse] = None


# ============================================================================
# Task Models
# ============================================================================

class TaskCreate(BaseModel):
    to_user: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)


class TaskResponse(BaseModel):
    id: str
    from_user: str
    to_user: str
    message: str
    status: str
    created_at: datetime
    completed_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, task: DirectTask) -> "TaskResponse":
        return cls(
            id=task.task_id,
            from_user=task.from_user,
            to_user=task.to_user,
            message=task.message,
            status=task.status.value,
            created_at=task.created_at,
            completed_at=task.completed_at,
        )


# ============================================================================
# Agenda Models
# ============================================================================

class AgendaResponse(BaseModel):
    actor: str
    today: str
    due: List[LeadResponse]
    future: List[LeadResponse]
    overdue_ids: List[str]
    direct_tasks: List[TaskResponse]
    transfer_requests: List[TransferResponse]
    has_overdue: bool
    total_alerts: int

    @classmethod
    def from_domain(cls, agenda: Agenda) -> "AgendaResponse":
        return cls(
            actor=agenda.actor,
            today=agenda.today,
            due=[LeadResponse.from_domain(lead) for lead in agenda.due],
            future=[LeadResponse.from_domain(lead) for lead in agenda.future],
            overdue_ids=[lead.lead_id for lead in agenda.overdue],
            direct_tasks=[TaskResponse.from_domain(task) for task in agenda.direct_tasks],
            transfer_requests=[TransferResponse.from_domain(r) for r in agenda.transfer_requests],
            has_overdue=agenda.has_overdue,
            total_alerts=agenda.total_alerts,
        )


# ============================================================================
# Chat and Log Models
# ============================================================================

class ChannelCreate(BaseModel):
    name: str = Field(..., min_length=1)


class ChannelResponse(BaseModel):
    id: str
    name: str
    created_by: Optional[str] = None

    @classmethod
    def from_domain(cls, channel: ChatChannel) -> "ChannelResponse":
        return cls(id=channel.channel_id, name=channel.name, created_by=channel.created_by)


class MessageCreate(BaseModel):
    text: str = Field(..., min_length=1)


class MessageResponse(BaseModel):
    id: str
    channel_id: str
    user: str
    text: str
    timestamp: datetime

    @classmethod
    def from_domain(cls, message: ChatMessage) -> "MessageResponse":
        return cls(
            id=message.message_id,
            channel_id=message.channel_id,
            user=message.user,
            text=message.text,
            timestamp=message.timestamp,
        )


class LogResponse(BaseModel):
    id: str
    user: str
    action: str
    details: str
    timestamp: datetime

    @classmethod
    def from_domain(cls, entry: OperationLog) -> "LogResponse":
        return cls(
            id=entry.log_id,
            user=entry.user,
            action=entry.action.value,
            details=entry.details,
            timestamp=entry.timestamp,
        )


# ============================================================================
# Error Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    detail: Optional[str] = None
    status_code: int
    owner: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "error": "ConflictError",
                "detail": "Lead 'Acme Bar' already exists (owned by Diego)",
                "status_code": 409,
                "owner": "Diego",
            }
        }
