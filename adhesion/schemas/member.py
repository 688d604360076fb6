import re
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from adhesion.models.member import Member, IdDocumentType, MemberStatus, RejectionCategory

NAME_PATTERN = re.compile(r"^[a-zA-ZÀ-ÿ\s\-'\.]+$")
PHONE_PATTERN = re.compile(r"^\+?[0-9]+$")
ID_NUMBER_PATTERN = re.compile(r"^[A-Z0-9]+$")
DATE_FORMAT = "%d-%m-%Y"


def _parse_date(value: str, label: str) -> date:
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except ValueError:
        raise ValueError(f"{label} must use the DD-MM-YYYY format")


def _age_on(birth: date, today: date) -> int:
    return today.year - birth.year - ((today.month, today.day) < (birth.month, birth.day))


class ProfileFieldRules(BaseModel):
    """Format rules shared by form submissions, amendments and operator edits."""
    first_names: Optional[str] = Field(None, min_length=2, max_length=100)
    last_name: Optional[str] = Field(None, min_length=2, max_length=50)
    birth_date: Optional[str] = None
    birth_place: Optional[str] = Field(None, min_length=2, max_length=100)
    phone: Optional[str] = Field(None, min_length=8, max_length=20)
    email: Optional[EmailStr] = None
    address: Optional[str] = Field(None, min_length=5, max_length=200)
    profession: Optional[str] = Field(None, min_length=2, max_length=100)
    city_of_residence: Optional[str] = Field(None, min_length=2, max_length=100)
    arrival_date: Optional[str] = None
    employer_or_school: Optional[str] = Field(None, min_length=2, max_length=150)
    id_document_type: Optional[IdDocumentType] = None
    id_number: Optional[str] = Field(None, min_length=5, max_length=20)
    id_issue_date: Optional[str] = None
    spouse_first_name: Optional[str] = Field(None, max_length=100)
    spouse_last_name: Optional[str] = Field(None, max_length=50)
    children_count: Optional[int] = Field(None, ge=0, le=20)
    photo_url: Optional[str] = None
    signature_url: Optional[str] = None
    comment: Optional[str] = Field(None, max_length=100)

    @field_validator("phone", mode="before")
    @classmethod
    def strip_phone_spaces(cls, value):
        if isinstance(value, str):
            return re.sub(r"\s+", "", value)
        return value

    @field_validator("id_number", mode="before")
    @classmethod
    def upper_id_number(cls, value):
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("first_names", "last_name", "spouse_first_name", "spouse_last_name")
    @classmethod
    def check_name(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        value = " ".join(value.split())
        if not NAME_PATTERN.match(value):
            raise ValueError("Names may only contain letters, spaces, hyphens, apostrophes and dots")
        return value

    @field_validator("first_names", "spouse_first_name")
    @classmethod
    def capitalize_first_names(cls, value: Optional[str]) -> Optional[str]:
        return value.title() if value else value

    @field_validator("last_name", "spouse_last_name")
    @classmethod
    def upper_last_name(cls, value: Optional[str]) -> Optional[str]:
        return value.upper() if value else value

    @field_validator("phone")
    @classmethod
    def check_phone(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not PHONE_PATTERN.match(value):
            raise ValueError("Phone number may only contain digits and a leading +")
        return value

    @field_validator("id_number")
    @classmethod
    def check_id_number(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not ID_NUMBER_PATTERN.match(value):
            raise ValueError("ID number may only contain upper case letters and digits")
        return value

    @field_validator("birth_date")
    @classmethod
    def check_birth_date(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        age = _age_on(_parse_date(value, "Birth date"), date.today())
        if age < 18 or age > 100:
            raise ValueError("Members must be between 18 and 100 years old")
        return value

    @field_validator("arrival_date", "id_issue_date")
    @classmethod
    def check_past_date(cls, value: Optional[str], info) -> Optional[str]:
        if value is None:
            return value
        if _parse_date(value, info.field_name) > date.today():
            raise ValueError(f"{info.field_name} cannot be in the future")
        return value

    @field_validator("first_names", "last_name", "birth_place", "address", "profession",
                     "city_of_residence", "employer_or_school", "comment")
    @classmethod
    def strip_text(cls, value: Optional[str]) -> Optional[str]:
        return value.strip() if value else value

    def profile_values(self) -> Dict[str, Any]:
        """Provided profile values in snapshot form."""
        return self.model_dump(mode="json", exclude_none=True, exclude={"document_url"})


class FormSubmission(ProfileFieldRules):
    """Membership application form."""
    first_names: str = Field(..., min_length=2, max_length=100)
    last_name: str = Field(..., min_length=2, max_length=50)
    birth_date: str
    birth_place: str = Field(..., min_length=2, max_length=100)
    phone: str = Field(..., min_length=8, max_length=20)
    address: str = Field(..., min_length=5, max_length=200)
    profession: str = Field(..., min_length=2, max_length=100)
    city_of_residence: str = Field(..., min_length=2, max_length=100)
    arrival_date: str
    employer_or_school: str = Field(..., min_length=2, max_length=150)
    id_document_type: IdDocumentType = IdDocumentType.CONSULAR_CARD
    id_number: str = Field(..., min_length=5, max_length=20)
    id_issue_date: str
    children_count: int = Field(0, ge=0, le=20)
    document_url: str = Field(..., min_length=1, description="URL of the signed form document")


class ProfileChanges(ProfileFieldRules):
    """Partial profile update. Empty strings mean the field is left unchanged."""

    model_config = {"extra": "forbid"}

    @model_validator(mode="before")
    @classmethod
    def drop_empty_values(cls, data):
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if value not in ("", None)}
        return data


class ProvisionMemberRequest(BaseModel):
    first_names: str = Field(..., min_length=2, max_length=100)
    last_name: str = Field(..., min_length=2, max_length=50)
    phone: str = Field(..., min_length=8, max_length=20)
    email: Optional[EmailStr] = None
    has_paid: bool = False

    @field_validator("phone", mode="before")
    @classmethod
    def strip_phone_spaces(cls, value):
        if isinstance(value, str):
            return re.sub(r"\s+", "", value)
        return value


class IssueIdentifierRequest(BaseModel):
    confirmed_paid: bool = Field(..., description="Operator confirms the membership fee was received")


class ApproveRequest(BaseModel):
    comment: Optional[str] = Field(None, max_length=500)
    final_document_url: Optional[str] = None


class RejectRequest(BaseModel):
    reason: str = Field(..., max_length=500)
    category: RejectionCategory = RejectionCategory.OTHER
    suggestions: Optional[str] = Field(None, max_length=500)


class ResetRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class DeactivateRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class SignatureUpdateRequest(BaseModel):
    signature_url: str = Field(..., min_length=1)


class MemberResponse(BaseModel):
    id: str
    membership_reference: str
    role: str
    status: MemberStatus
    first_names: str
    last_name: str
    phone: str
    email: Optional[str] = None
    username: Optional[str] = None
    has_paid: bool
    has_submitted_form: bool
    must_change_password: bool
    is_active: bool
    form_code: Optional[str] = None
    card_issued_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_member(cls, member: Member) -> "MemberResponse":
        return cls(
            id=str(member.id),
            membership_reference=member.membership_reference,
            role=member.role.value,
            status=member.status,
            first_names=member.first_names,
            last_name=member.last_name,
            phone=member.phone,
            email=member.email,
            username=member.username,
            has_paid=bool(member.has_paid),
            has_submitted_form=bool(member.has_submitted_form),
            must_change_password=bool(member.must_change_password),
            is_active=bool(member.is_active),
            form_code=member.form_code,
            card_issued_at=member.card_issued_at,
            rejection_reason=member.rejection_reason,
            created_at=member.created_at,
        )

    class Config:
        from_attributes = True


class CredentialsResponse(BaseModel):
    member: MemberResponse
    username: str
    temporary_password: str


class ProvisionResponse(BaseModel):
    member: MemberResponse
    credentials: Optional[CredentialsResponse] = None


class MembershipFormResponse(BaseModel):
    id: str
    version: int
    is_active_version: bool
    resubmission_count: int
    document_url: str
    snapshot: Dict[str, Any]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_form(cls, form) -> "MembershipFormResponse":
        return cls(
            id=str(form.id),
            version=form.version,
            is_active_version=bool(form.is_active_version),
            resubmission_count=form.resubmission_count or 0,
            document_url=form.document_url,
            snapshot=form.snapshot,
            created_at=form.created_at,
            updated_at=form.updated_at,
        )


class FormListResponse(BaseModel):
    items: List[MemberResponse]
    total: int
    page: int
    limit: int
