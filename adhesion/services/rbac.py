import enum
from typing import Dict, FrozenSet

from adhesion.models.member import Member, MemberRole


class Operation(str, enum.Enum):
    """Operations subject to role checks."""
    PROVISION_MEMBER = "provision_member"
    ISSUE_IDENTIFIER = "issue_identifier"
    MARK_PAID = "mark_paid"
    SUBMIT_OWN_FORM = "submit_own_form"
    SUBMIT_FORM_ON_BEHALF = "submit_form_on_behalf"
    VIEW_FORMS = "view_forms"
    APPROVE_FORM = "approve_form"
    REJECT_FORM = "reject_form"
    RESET_FORM = "reset_form"
    EDIT_MEMBER_PROFILE = "edit_member_profile"
    DEACTIVATE_MEMBER = "deactivate_member"
    VIEW_STATISTICS = "view_statistics"
    UPDATE_SIGNATURE = "update_signature"
    SUBMIT_AMENDMENT = "submit_amendment"
    VIEW_OWN_AMENDMENTS = "view_own_amendments"
    VIEW_PENDING_AMENDMENTS = "view_pending_amendments"
    DECIDE_AMENDMENT = "decide_amendment"
    VIEW_OWN_CARD = "view_own_card"
    VIEW_DOCUMENTS = "view_documents"
    MANAGE_DOCUMENTS = "manage_documents"


_OPERATORS = frozenset({MemberRole.SECRETARY, MemberRole.PRESIDENT})
_EVERYONE = frozenset(MemberRole)

POLICY: Dict[Operation, FrozenSet[MemberRole]] = {
    Operation.PROVISION_MEMBER: _OPERATORS,
    Operation.ISSUE_IDENTIFIER: _OPERATORS,
    Operation.MARK_PAID: _OPERATORS,
    Operation.SUBMIT_OWN_FORM: _EVERYONE,
    Operation.SUBMIT_FORM_ON_BEHALF: _OPERATORS,
    Operation.VIEW_FORMS: _OPERATORS,
    Operation.APPROVE_FORM: _OPERATORS,
    Operation.REJECT_FORM: _OPERATORS,
    Operation.RESET_FORM: _OPERATORS,
    Operation.EDIT_MEMBER_PROFILE: _OPERATORS,
    Operation.DEACTIVATE_MEMBER: _OPERATORS,
    Operation.VIEW_STATISTICS: _OPERATORS,
    Operation.UPDATE_SIGNATURE: _OPERATORS,
    Operation.SUBMIT_AMENDMENT: _EVERYONE,
    Operation.VIEW_OWN_AMENDMENTS: _EVERYONE,
    Operation.VIEW_PENDING_AMENDMENTS: _OPERATORS,
    Operation.DECIDE_AMENDMENT: _OPERATORS,
    Operation.VIEW_OWN_CARD: _EVERYONE,
    Operation.VIEW_DOCUMENTS: _EVERYONE,
    Operation.MANAGE_DOCUMENTS: _OPERATORS,
}


def is_allowed(role: MemberRole, operation: Operation) -> bool:
    """Check the policy table. Unknown operations are denied."""
    return role in POLICY.get(operation, frozenset())


def can_perform(member: Member, operation: Operation) -> bool:
    """Active accounts whose role is allowed by the policy table."""
    return bool(member.is_active) and is_allowed(member.role, operation)
