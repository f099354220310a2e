"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  XY CRM - Modèle Lead & Follow-up                                            ║
║                                                                              ║
║  CYCLE DE VIE: NEW -> IN_PROGRESS -> CUSTOMER | REJECTED                     ║
║  - Un lead appartient TOUJOURS à une société (company_id)                    ║
║  - next_followup_date par défaut: maintenant + 3 jours                       ║
║  - Un follow-up met à jour la date et le statut de son lead                  ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, field_validator


class LeadStatus(str, Enum):
    NEW = "NEW"
    IN_PROGRESS = "IN_PROGRESS"
    CUSTOMER = "CUSTOMER"
    REJECTED = "REJECTED"


class LeadPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


VALID_LEAD_STATUSES = [s.value for s in LeadStatus]
VALID_PRIORITIES = [p.value for p in LeadPriority]


def _upper_status(v):
    if v is None:
        return v
    v = str(v).upper()
    if v not in VALID_LEAD_STATUSES:
        raise ValueError(f"Invalid status: {v}. Valid: {VALID_LEAD_STATUSES}")
    return v


def _lower_priority(v):
    if v is None:
        return v
    v = str(v).lower()
    if v not in VALID_PRIORITIES:
        raise ValueError(f"Invalid priority: {v}. Valid: {VALID_PRIORITIES}")
    return v


class LeadCreate(BaseModel):
    """Obligatoires (400 si absents): name, phone, place, source_id"""
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    company_name: Optional[str] = None
    employee_id: Optional[str] = None
    product_ids: List[str] = []
    status: Optional[str] = "NEW"
    priority: Optional[str] = "medium"
    designation: Optional[str] = None
    description: Optional[str] = None
    next_followup_date: Optional[str] = None
    place: Optional[str] = None
    source_id: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        return _upper_status(v)

    @field_validator("priority")
    @classmethod
    def validate_priority(cls, v):
        return _lower_priority(v)


class LeadUpdate(LeadCreate):
    """Obligatoires (400 si absents): name, phone, status, priority, source_id"""
    status: Optional[str] = None
    priority: Optional[str] = None
    product_ids: Optional[List[str]] = None


class FollowUpCreate(BaseModel):
    lead_id: str
    next_followup_date: str
    last_requirement: str = ""
    status: str

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        return _upper_status(v)


class FollowUpUpdate(FollowUpCreate):
    id: str
