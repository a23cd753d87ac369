"""Domain records exchanged with external campus services."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class Mentor(BaseModel):
    id: str
    name: str
    expertise: List[str] = Field(default_factory=list)
    available: bool = True
    # ISO-8601 slots the mentor has open
    open_slots: List[datetime] = Field(default_factory=list)


class Booking(BaseModel):
    id: str
    mentor_id: str
    owner_id: str
    slot: datetime
    topic: Optional[str] = None


class SubmissionEvent(BaseModel):
    status: str
    at: datetime
    note: Optional[str] = None


class Submission(BaseModel):
    id: str
    owner_id: str
    title: str
    status: str
    timeline: List[SubmissionEvent] = Field(default_factory=list)


class Resource(BaseModel):
    id: str
    name: str
    category: str
    location: Optional[str] = None
    quantity_available: int = 0


class Reservation(BaseModel):
    id: str
    resource_id: str
    owner_id: str
    quantity: int


class ApprovalRequest(BaseModel):
    id: str
    owner_id: str
    title: str
    status: str = "pending"  # pending, approved, rejected
    approvers: List[str] = Field(default_factory=list)
    pending_approver: Optional[str] = None
