# Overview: Service-layer operations for the CRM audit trail.

from __future__ import annotations

from ..extensions import db
from ..models import CrmLog
"""
CRM Audit Trail Invariants

- Append-only: rows are never updated; only a customer deletion removes them
  (together with the customer they describe).
- Entries are written inside the same transaction as the action they record,
  so an action and its audit row commit or roll back together.
- created_at is system time (DB default).
"""


# Action names written by the CRM and sales workflows
CREATED_CUSTOMER = "created_customer"
UPDATED_CUSTOMER = "updated_customer"
DELETED_CUSTOMER = "deleted_customer"
UPDATED_ASSIGNMENTS = "updated_assignments"
UNASSIGNED_CUSTOMER = "unassigned_customer"
MOVED_STAGE = "moved_stage"
CREATED_QUOTE = "created_quote"
UPDATED_QUOTE = "updated_quote"
CONVERTED_QUOTE = "converted_quote"
EMAILED_QUOTE = "emailed_quote"


def append_crm_log(
    *,
    customer_id: int | None,
    user_id: int | None,
    action: str,
    details: str | None = None,
) -> CrmLog:
    """
    Append one audit row. Flushes, never commits: the caller owns the transaction.
    """
    if not action:
        raise ValueError("action is required for a CRM log entry")

    entry = CrmLog(
        customer_id=customer_id,
        user_id=user_id,
        action=action,
        details=details,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def list_crm_logs(customer_id: int) -> list[CrmLog]:
    return (
        db.session.query(CrmLog)
        .filter(CrmLog.customer_id == customer_id)
        .order_by(CrmLog.created_at.desc(), CrmLog.id.desc())
        .all()
    )
