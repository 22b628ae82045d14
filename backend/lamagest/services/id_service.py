# Overview: Human-readable sequential ids for products, movements, clients and invoices.

from __future__ import annotations

import logging
import re
import string
import time

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Counter, Invoice
from ..validation import PersistenceError, ValidationError
from .concurrency import run_with_retry


logger = logging.getLogger(__name__)

"""
ID STRATEGIES:

- counter: one Counter row per kind, incremented atomically and committed on
  its own before the id is returned. Numbers are never reused, even when the
  caller's batch later fails.
- scan: invoices derive the next number from the highest existing INV-NNN.
  Two concurrent creators can compute the same id; the loser hits the primary
  key on commit and re-runs (invoice_service passes IntegrityError to
  run_with_retry).

If storage fails, the id degrades to prefix + base36(epoch ms). Callers never
see an error from id issuance.
"""

COUNTER_KINDS = {
    "products": ("prod-", 3),
    "stockMovements": ("MOV", 6),
    "clients": ("cli-", 3),
}

SCAN_KINDS = {
    "invoices": ("INV-", 3),
}

INVOICE_ID_PATTERN = re.compile(r"(?:INV-)(\d+)", re.IGNORECASE)

_BASE36 = string.digits + string.ascii_lowercase


def to_base36(n: int) -> str:
    if n < 0:
        raise ValueError("n must be non-negative")
    if n == 0:
        return "0"
    out = []
    while n:
        n, rem = divmod(n, 36)
        out.append(_BASE36[rem])
    return "".join(reversed(out))


def fallback_id(prefix: str) -> str:
    """Non-sequential id used when the counter store is unavailable."""
    return f"{prefix}{to_base36(int(time.time() * 1000))}"


def format_id(prefix: str, number: int, width: int) -> str:
    return f"{prefix}{number:0{width}d}"


def _allocate_counter(kind: str) -> int:
    """
    Atomically increment the counter row for kind and commit.

    Missing rows are created with count=1; a concurrent creator loses on the
    primary key and falls back to the UPDATE.
    """
    def _op() -> int:
        stmt = (
            update(Counter)
            .where(Counter.kind == kind)
            .values(count=Counter.count + 1)
        )
        result = db.session.execute(stmt)
        if not result.rowcount:
            db.session.add(Counter(kind=kind, count=1))
            try:
                db.session.flush()
            except IntegrityError:
                db.session.rollback()
                result = db.session.execute(stmt)
                if not result.rowcount:
                    raise
        db.session.flush()
        value = db.session.query(Counter.count).filter_by(kind=kind).scalar()
        db.session.commit()
        return int(value)

    return run_with_retry(_op)


def _scan_next_invoice_number() -> int:
    ids = [row[0] for row in db.session.query(Invoice.id).all()]
    numbers = []
    for invoice_id in ids:
        match = INVOICE_ID_PATTERN.search(invoice_id or "")
        if match:
            numbers.append(int(match.group(1)))
    if numbers:
        return max(numbers) + 1
    return len(ids) + 1


def next_id(kind: str) -> str:
    """
    Issue the next id for kind ("products", "stockMovements", "clients",
    "invoices").
    """
    if kind in COUNTER_KINDS:
        prefix, width = COUNTER_KINDS[kind]
        try:
            number = _allocate_counter(kind)
        except PersistenceError as exc:
            logger.warning("Counter %s unavailable, issuing fallback id: %s", kind, exc)
            return fallback_id(prefix)
        return format_id(prefix, number, width)

    if kind in SCAN_KINDS:
        prefix, width = SCAN_KINDS[kind]
        try:
            number = run_with_retry(_scan_next_invoice_number)
        except PersistenceError as exc:
            logger.warning("Invoice id scan failed, issuing fallback id: %s", exc)
            return fallback_id(prefix)
        return format_id(prefix, number, width)

    raise ValidationError(f"Unknown id kind: {kind}")


def peek_counters() -> list[Counter]:
    return db.session.query(Counter).order_by(Counter.kind.asc()).all()
