"""
Membership lifecycle errors.

Every refusal raised by the services carries a stable code, an HTTP status,
a human readable message and a list of remediation hints. The API layer
renders them through a single exception handler registered in main.py.

Usage:
    from adhesion.core.errors import AlreadyApproved

    raise AlreadyApproved(context={"member_id": str(member.id)})
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


class LifecycleError(Exception):
    """Base class for all business refusals."""

    category = "LIFECYCLE"
    code = "LIFECYCLE_ERROR"
    status_code = 400
    default_message = "The operation could not be completed."
    default_hints: List[str] = []

    def __init__(
        self,
        message: Optional[str] = None,
        hints: Optional[List[str]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message or self.default_message
        self.hints = list(hints) if hints is not None else list(self.default_hints)
        self.context = context or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert error to a JSON-serializable response body."""
        return {
            "success": False,
            "error": {
                "type": self.category,
                "code": self.code,
                "message": self.message,
                "hints": self.hints,
                "context": self.context,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        }


# Categories

class ValidationFailed(LifecycleError):
    category = "VALIDATION"
    code = "VALIDATION_ERROR"
    status_code = 400
    default_message = "The submitted data is invalid."


class AuthorizationDenied(LifecycleError):
    category = "AUTHORIZATION"
    code = "OPERATION_FORBIDDEN"
    status_code = 403
    default_message = "You are not allowed to perform this operation."


class NotFound(LifecycleError):
    category = "NOT_FOUND"
    code = "NOT_FOUND"
    status_code = 404
    default_message = "The requested resource does not exist."


class Conflict(LifecycleError):
    category = "CONFLICT"
    code = "CONFLICT"
    status_code = 409
    default_message = "The operation conflicts with the current state."


class PreconditionFailed(LifecycleError):
    category = "PRECONDITION"
    code = "PRECONDITION_FAILED"
    status_code = 409
    default_message = "A precondition for this operation is not met."


class ReferenceAllocationFailed(LifecycleError):
    category = "SYSTEM"
    code = "REFERENCE_ALLOCATION_FAILED"
    status_code = 503
    default_message = "Could not allocate a unique reference number."
    default_hints = ["Retry the request in a few seconds."]


# Conflicts

class DuplicateIdentity(Conflict):
    code = "DUPLICATE_IDENTITY"
    default_message = "Another member already uses this identity."

    def __init__(self, field: str, **kwargs):
        self.field = field
        kwargs.setdefault("message", f"Another member already uses this {field}.")
        kwargs.setdefault("hints", [f"Check the {field} or contact the secretariat if it is yours."])
        context = kwargs.pop("context", None) or {}
        context.setdefault("field", field)
        super().__init__(context=context, **kwargs)


class AlreadyApproved(Conflict):
    code = "ALREADY_APPROVED"
    default_message = "This membership form has already been approved."
    default_hints = ["Approved profiles can only change through an amendment request."]


class AlreadyPendingReview(Conflict):
    code = "ALREADY_PENDING_REVIEW"
    default_message = "A membership form is already awaiting review."
    default_hints = ["Wait for the secretariat to review the current submission."]


class AlreadyProvisioned(Conflict):
    code = "ALREADY_PROVISIONED"
    default_message = "Login identifiers have already been issued for this member."


class AlreadyPaid(Conflict):
    code = "ALREADY_PAID"
    default_message = "The membership fee is already recorded as paid."


class AlreadyDeactivated(Conflict):
    code = "ALREADY_DEACTIVATED"
    default_message = "This account is already deactivated."


class AmendmentAlreadyPending(Conflict):
    code = "AMENDMENT_ALREADY_PENDING"
    default_message = "An amendment request is already awaiting review."

    def __init__(self, reference_number: str, **kwargs):
        kwargs.setdefault("hints", [f"Wait for the decision on amendment {reference_number}."])
        context = kwargs.pop("context", None) or {}
        context.setdefault("reference_number", reference_number)
        super().__init__(context=context, **kwargs)


class NoChangesDetected(Conflict):
    code = "NO_CHANGES_DETECTED"
    default_message = "The request does not change any profile field."
    default_hints = ["Modify at least one field before submitting."]


class AmendmentAlreadyDecided(Conflict):
    code = "AMENDMENT_ALREADY_DECIDED"
    default_message = "This amendment has already been decided."


class StaleAmendment(Conflict):
    code = "AMENDMENT_STALE"
    default_message = "The profile changed since the amendment was submitted."
    default_hints = ["Reject this amendment and ask the member to submit a new one."]


# Preconditions

class NotSubmitted(PreconditionFailed):
    code = "NOT_SUBMITTED"
    default_message = "No membership form has been submitted."
    default_hints = ["The member must submit the membership form first."]


class NotPendingReview(PreconditionFailed):
    code = "NOT_PENDING_REVIEW"
    default_message = "The membership form is not awaiting review."
    default_hints = ["A rejected member must resubmit the form before a new decision."]


class PaymentNotConfirmed(PreconditionFailed):
    code = "PAYMENT_NOT_CONFIRMED"
    default_message = "The membership fee has not been confirmed as paid."
    default_hints = ["Confirm the payment before issuing identifiers."]


class MemberNotApproved(PreconditionFailed):
    code = "MEMBER_NOT_APPROVED"
    status_code = 403
    default_message = "Only approved members can request a profile amendment."


class PasswordChangeRequired(PreconditionFailed):
    code = "PASSWORD_CHANGE_REQUIRED"
    status_code = 403
    default_message = "The temporary password must be changed before continuing."
    default_hints = ["Call the change-password endpoint with the temporary password."]


# Not found

class MemberNotFound(NotFound):
    code = "MEMBER_NOT_FOUND"
    default_message = "Member not found."


class AmendmentNotFound(NotFound):
    code = "AMENDMENT_NOT_FOUND"
    default_message = "Amendment not found."


class ApplicationNotFound(NotFound):
    code = "APPLICATION_NOT_FOUND"
    default_message = "No application matches these details."
    default_hints = ["Check the phone number and the reference number."]


# Authorization

class OperatorRequired(AuthorizationDenied):
    code = "OPERATOR_REQUIRED"
    default_message = "This operation is reserved to the secretariat."


class OperationForbidden(AuthorizationDenied):
    code = "OPERATION_FORBIDDEN"


class DeactivationForbidden(AuthorizationDenied):
    code = "DEACTIVATION_FORBIDDEN"
    default_message = "Secretariat accounts cannot be deactivated."


class InvalidCredentials(AuthorizationDenied):
    code = "INVALID_CREDENTIALS"
    status_code = 401
    default_message = "Incorrect username or password."


# Official documents

class CategoryNotFound(NotFound):
    code = "CATEGORY_NOT_FOUND"
    default_message = "Document category not found."


class DocumentNotFound(NotFound):
    code = "DOCUMENT_NOT_FOUND"
    default_message = "Official document not found."


class CategoryAlreadyExists(Conflict):
    code = "CATEGORY_ALREADY_EXISTS"
    default_message = "A category with this name already exists."
    default_hints = ["Choose a different name or edit the existing category."]


class CategoryHasDocuments(Conflict):
    code = "CATEGORY_HAS_DOCUMENTS"
    default_message = "This category still contains official documents."
    default_hints = [
        "Move the documents to another category first.",
        "Or deactivate the category instead of deleting it.",
    ]


class InvalidCategory(ValidationFailed):
    code = "INVALID_CATEGORY"
    default_message = "The category does not exist or is inactive."


# Cards and password reset

class CardNotAvailable(NotFound):
    code = "CARD_NOT_AVAILABLE"
    default_message = "The membership card is not available until the membership form is approved."


class InvalidResetToken(ValidationFailed):
    code = "INVALID_RESET_TOKEN"
    default_message = "Invalid or expired reset token."
    default_hints = ["Request a new password reset link."]
