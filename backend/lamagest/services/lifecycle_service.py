# Overview: Invoice status state machine shared by the invoice service and routes.

"""
Lama Gest Invoice Lifecycle

================================================================================
STATE MACHINE:
    pending -> confirmed -> paid <-> not paid

    pending:   created without touching stock; editable; deletable without
               restoration
    confirmed: stock debited (confirm_invoice)
    paid / not paid:
               stock debited; payment state follows rest (or is forced by
               set_payment_status)

RULES:
1. Only pending -> confirmed debits stock
2. A debited invoice never returns to pending
3. Invoices created "confirmed" start directly in paid / not paid
================================================================================
"""

from __future__ import annotations

from ..models import InvoiceStatus
from ..validation import ValidationError


VALID_STATUSES = {s.value for s in InvoiceStatus}

DEBITED_STATUSES = frozenset({
    InvoiceStatus.CONFIRMED,
    InvoiceStatus.PAID,
    InvoiceStatus.NOT_PAID,
})

_TRANSITIONS = {
    (InvoiceStatus.PENDING, InvoiceStatus.CONFIRMED),
    (InvoiceStatus.CONFIRMED, InvoiceStatus.PAID),
    (InvoiceStatus.CONFIRMED, InvoiceStatus.NOT_PAID),
    (InvoiceStatus.PAID, InvoiceStatus.NOT_PAID),
    (InvoiceStatus.NOT_PAID, InvoiceStatus.PAID),
}


class InvoiceStateError(ValidationError):
    """Raised when an invoice operation is not legal in its current status."""
    code = "INVALID_TRANSITION"


def parse_status(status) -> InvoiceStatus:
    if isinstance(status, InvoiceStatus):
        return status
    try:
        return InvoiceStatus(str(status).strip().lower())
    except ValueError:
        raise ValidationError(
            f"Invalid status '{status}'. Must be one of: {', '.join(sorted(VALID_STATUSES))}"
        )


def can_transition(from_status, to_status) -> bool:
    """
    No-op transitions are allowed; callers decide whether they mean anything.
    """
    src = parse_status(from_status)
    dst = parse_status(to_status)
    if src == dst:
        return True
    return (src, dst) in _TRANSITIONS


def require_transition(from_status, to_status) -> InvoiceStatus:
    dst = parse_status(to_status)
    if not can_transition(from_status, dst):
        raise InvoiceStateError(
            f"Cannot transition invoice from '{parse_status(from_status).value}' to '{dst.value}'"
        )
    return dst


def is_debited(status) -> bool:
    """True when the invoice's lines have been taken out of stock."""
    return parse_status(status) in DEBITED_STATUSES


def payment_status(rest_cents: int) -> InvoiceStatus:
    return InvoiceStatus.PAID if rest_cents == 0 else InvoiceStatus.NOT_PAID
