import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import event
from sqlalchemy.orm import Session

from adhesion.core.config import settings, LOGS_DIR
from adhesion.models.member import Member
from adhesion.models.system import AuditEntry

logger = logging.getLogger(__name__)

_PENDING_KEY = "pending_audit_lines"


@dataclass
class RequestContext:
    """Client information captured for the audit trail."""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


def write_audit_log(user_name: str, user_role: str, action: str, details: str = ""):
    LOGS_DIR.mkdir(parents=True, exist_ok=True)
    month_str = datetime.now().strftime("%Y_%m")
    log_file = LOGS_DIR / f"audit_{month_str}.log"
    ts = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    with open(log_file, "a", encoding="utf-8") as f:
        f.write(f"{ts} | {user_role} | {user_name} | {action} | {details}\n")


def record_audit(
    db: Session,
    action: str,
    actor: Optional[Member] = None,
    member_id: Optional[UUID] = None,
    details: Optional[dict] = None,
    context: Optional[RequestContext] = None,
) -> AuditEntry:
    """Add an audit entry to the current transaction.

    The row commits or rolls back together with the state change it
    describes. The plain-text mirror line is only written once the
    transaction commits.
    """
    context = context or RequestContext()
    entry = AuditEntry(
        actor_id=actor.id if actor is not None else None,
        member_id=member_id,
        action=action,
        details=details or {},
        ip_address=context.ip_address,
        user_agent=context.user_agent,
    )
    db.add(entry)

    if actor is not None:
        user_name = actor.username or actor.full_name
        user_role = actor.role.value
    else:
        user_name, user_role = "anonymous", "public"
    line_details = f"member={member_id} " + json.dumps(details or {}, default=str, ensure_ascii=False)
    db.info.setdefault(_PENDING_KEY, []).append((user_name, user_role, action, line_details))
    return entry


@event.listens_for(Session, "after_commit")
def _flush_audit_mirror(session):
    lines = session.info.pop(_PENDING_KEY, [])
    if not settings.AUDIT_LOG_ENABLED:
        return
    for user_name, user_role, action, details in lines:
        try:
            write_audit_log(user_name=user_name, user_role=user_role, action=action, details=details)
        except OSError as e:
            logger.warning("Could not mirror audit entry %s to file: %s", action, e)


@event.listens_for(Session, "after_rollback")
def _discard_audit_mirror(session):
    session.info.pop(_PENDING_KEY, None)
