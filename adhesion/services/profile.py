"""
Typed view of the member profile.

Profile values travel through snapshots (form versions, amendment before and
after states) in a serialized form: dates as DD-MM-YYYY strings, enums as
their value. This module is the single place that converts between the
ORM attributes and that form.
"""
import enum
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from adhesion.core.errors import ValidationFailed
from adhesion.models.member import Member, IdDocumentType

DATE_FORMAT = "%d-%m-%Y"

DATE_FIELDS = frozenset({"birth_date", "arrival_date", "id_issue_date"})
INTEGER_FIELDS = frozenset({"children_count"})
ENUM_FIELDS = {"id_document_type": IdDocumentType}

PROFILE_FIELDS = (
    "first_names",
    "last_name",
    "birth_date",
    "birth_place",
    "phone",
    "email",
    "address",
    "profession",
    "city_of_residence",
    "arrival_date",
    "employer_or_school",
    "id_document_type",
    "id_number",
    "id_issue_date",
    "spouse_first_name",
    "spouse_last_name",
    "children_count",
    "photo_url",
    "signature_url",
    "comment",
)

# Fields a member may change after approval through an amendment
AMENDABLE_FIELDS = (
    "first_names",
    "last_name",
    "phone",
    "email",
    "address",
    "profession",
    "city_of_residence",
    "employer_or_school",
    "id_number",
    "id_issue_date",
    "spouse_first_name",
    "spouse_last_name",
    "children_count",
    "photo_url",
    "signature_url",
)


@dataclass(frozen=True)
class FieldChange:
    field: str
    before: Any
    after: Any

    def to_dict(self) -> dict:
        return {"field": self.field, "before": self.before, "after": self.after}


def format_day_month_year(value: Optional[date]) -> Optional[str]:
    if value is None:
        return None
    return value.strftime(DATE_FORMAT)


def parse_day_month_year(value: Any, field: str = "date") -> Optional[date]:
    """Parse a DD-MM-YYYY string (or pass a date through)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value).strip(), DATE_FORMAT).date()
    except ValueError:
        raise ValidationFailed(
            message=f"Invalid date for {field}: expected DD-MM-YYYY.",
            hints=["Use the DD-MM-YYYY format, for example 05-03-1990."],
            context={"field": field, "value": str(value)},
        )


def serialize_value(field: str, value: Any) -> Any:
    """Convert an attribute value to its snapshot form."""
    if value is None:
        return None
    if field in DATE_FIELDS:
        return format_day_month_year(parse_day_month_year(value, field))
    if isinstance(value, enum.Enum):
        return value.value
    if field in INTEGER_FIELDS:
        return int(value)
    if isinstance(value, str):
        return value.strip()
    return value


def profile_snapshot(member: Member, fields: Iterable[str] = PROFILE_FIELDS) -> Dict[str, Any]:
    """Serialized copy of the member's current profile."""
    return {field: serialize_value(field, getattr(member, field)) for field in fields}


def compute_diff(
    current: Dict[str, Any],
    requested: Dict[str, Any],
    fields: Iterable[str] = AMENDABLE_FIELDS,
) -> List[FieldChange]:
    """Field-by-field changes between a snapshot and requested values.

    Requested values that are missing, None or empty strings are ignored, as
    are values equal to the current ones.
    """
    changes = []
    for field in fields:
        if field not in requested:
            continue
        raw = requested[field]
        if raw is None or (isinstance(raw, str) and raw.strip() == ""):
            continue
        after = serialize_value(field, raw)
        before = current.get(field)
        if after != before:
            changes.append(FieldChange(field=field, before=before, after=after))
    return changes


def deserialize_value(field: str, value: Any) -> Any:
    """Convert a snapshot value back to an attribute value."""
    if value is None:
        return None
    if field in DATE_FIELDS:
        return parse_day_month_year(value, field)
    if field in ENUM_FIELDS:
        return ENUM_FIELDS[field](value)
    if field in INTEGER_FIELDS:
        return int(value)
    return value


def apply_profile_values(member: Member, values: Dict[str, Any]) -> None:
    """Write snapshot-form values onto the member."""
    for field, value in values.items():
        if field not in PROFILE_FIELDS:
            raise ValidationFailed(
                message=f"Unknown profile field: {field}.",
                context={"field": field},
            )
        setattr(member, field, deserialize_value(field, value))
