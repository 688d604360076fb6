from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime

from adhesion.models.amendment import Amendment, AmendmentDecision, AmendmentStatus, AmendmentType
from adhesion.schemas.member import ProfileChanges


class AmendmentCreate(BaseModel):
    changes: ProfileChanges
    justification: str = Field(..., min_length=10, max_length=200, description="Why the change is requested")
    amendment_type: AmendmentType = AmendmentType.MINOR
    supporting_documents: List[str] = Field(default_factory=list, description="URLs of supporting documents")
    member_comment: Optional[str] = Field(None, max_length=500)


class AmendmentDecisionRequest(BaseModel):
    decision: AmendmentDecision
    comment: Optional[str] = Field(None, max_length=500)
    rejection_reason: Optional[str] = Field(None, max_length=500)


class AmendmentResponse(BaseModel):
    """Operator view of an amendment."""
    id: str
    member_id: str
    member_name: Optional[str] = None
    reference_number: str
    amendment_type: AmendmentType
    status: AmendmentStatus
    changed_fields: List[str]
    before_snapshot: Dict[str, Any]
    requested_values: Dict[str, Any]
    justification: str
    supporting_documents: List[str] = []
    member_comment: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    reviewer_comment: Optional[str] = None
    rejection_reason: Optional[str] = None
    submitted_at: Optional[datetime] = None

    @classmethod
    def from_amendment(cls, amendment: Amendment) -> "AmendmentResponse":
        return cls(
            id=str(amendment.id),
            member_id=str(amendment.member_id),
            member_name=amendment.member.full_name if amendment.member else None,
            reference_number=amendment.reference_number,
            amendment_type=amendment.amendment_type,
            status=amendment.status,
            changed_fields=list(amendment.changed_fields or []),
            before_snapshot=dict(amendment.before_snapshot or {}),
            requested_values=dict(amendment.requested_values or {}),
            justification=amendment.justification,
            supporting_documents=list(amendment.supporting_documents or []),
            member_comment=amendment.member_comment,
            reviewed_by=str(amendment.reviewed_by) if amendment.reviewed_by else None,
            reviewed_at=amendment.reviewed_at,
            reviewer_comment=amendment.reviewer_comment,
            rejection_reason=amendment.rejection_reason,
            submitted_at=amendment.submitted_at,
        )
