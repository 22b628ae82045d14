# Overview: Invoice lifecycle tied to stock ledger deltas.

"""
Lama Gest Invoice Stock Integration

STOCK RULES:
- create_invoice: pending, no stock change
- create_confirmed_invoice: ledger decrements + invoice row, one batch
- confirm_invoice: pending -> confirmed, ledger decrements, one batch
- update_invoice: debited invoices apply only the per-line quantity difference
  (diff = new - original; stock ends at current - diff)
- delete_invoice: debited invoices give every line back to stock (missing
  products are skipped); pending invoices give nothing back

FINANCIALS (cents):
    total = sum(quantity * unit_price)
    total_after_discount = total - remise
    rest = max(0, total_after_discount - advance)
"""

from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Client, Invoice, InvoiceLine, InvoiceStatus, Product
from ..validation import (
    InsufficientStockError,
    NotFoundError,
    ValidationError,
    coerce_int,
)
from lamagest.time_utils import utcnow, format_display_date
from .concurrency import commit_batch, run_with_retry
from .id_service import next_id
from .lifecycle_service import (
    InvoiceStateError,
    is_debited,
    parse_status,
    payment_status,
    require_transition,
)
from . import ledger_service


logger = logging.getLogger(__name__)


def normalize_invoice_id(invoice_id) -> str:
    return str(invoice_id or "").strip().upper()


def compute_financials(line_totals: list[int], remise_cents: int, advance_cents: int) -> dict:
    total = sum(line_totals)
    after_discount = total - remise_cents
    rest = max(0, after_discount - advance_cents)
    return {
        "total_cents": total,
        "total_after_discount_cents": after_discount,
        "rest_cents": rest,
    }


def _apply_financials(invoice: Invoice) -> None:
    figures = compute_financials(
        [line.total_cents for line in invoice.lines],
        invoice.remise_cents or 0,
        invoice.advance_cents or 0,
    )
    invoice.total_cents = figures["total_cents"]
    invoice.total_after_discount_cents = figures["total_after_discount_cents"]
    invoice.rest_cents = figures["rest_cents"]


def _non_negative_cents(data: dict, field: str, errors: list[str], default: int = 0) -> int:
    raw = data.get(field)
    if raw is None:
        return default
    try:
        value = coerce_int(raw, field)
    except ValidationError:
        errors.append(f"Valid {field} is required")
        return default
    if value < 0:
        errors.append(f"Valid {field} is required")
        return default
    return value


def _positive_quantity(raw, index: int, errors: list[str]) -> int | None:
    try:
        quantity = coerce_int(raw, "quantity")
    except ValidationError:
        quantity = None
    if quantity is None or quantity <= 0:
        errors.append(f"Product {index}: valid quantity is required")
        return None
    return quantity


def _raise_collected(errors: list[str], stock_errors: bool) -> None:
    if not errors:
        return
    if stock_errors:
        raise InsufficientStockError("Insufficient stock", errors=errors)
    raise ValidationError("Validation failed", errors=errors)


def _require_client(client_id: str) -> Client:
    client = db.session.get(Client, client_id)
    if client is None:
        raise NotFoundError("Client not found", code="CLIENT_NOT_FOUND")
    return client


def _raise_ledger_failures(results) -> None:
    failures = ledger_service.failed(results)
    if failures:
        db.session.rollback()
        raise InsufficientStockError("Insufficient stock", errors=[f.error for f in failures])


def get_invoice(invoice_id: str) -> Invoice:
    invoice = db.session.get(Invoice, normalize_invoice_id(invoice_id))
    if invoice is None:
        raise NotFoundError("Invoice not found", code="INVOICE_NOT_FOUND")
    return invoice


def list_invoices(*, status: str | None = None, client_id: str | None = None) -> list[Invoice]:
    query = db.session.query(Invoice)
    if status:
        query = query.filter(Invoice.status == parse_status(status).value)
    if client_id:
        query = query.filter(Invoice.client_id == client_id)
    return query.order_by(Invoice.created_at.desc(), Invoice.id.desc()).all()


def search_invoices(term: str) -> list[Invoice]:
    term = (term or "").strip()
    if not term:
        return list_invoices()
    pattern = f"%{term}%"
    return (
        db.session.query(Invoice)
        .filter(or_(Invoice.client_name.ilike(pattern), Invoice.id.ilike(pattern)))
        .order_by(Invoice.created_at.desc(), Invoice.id.desc())
        .all()
    )


def create_invoice(data: dict) -> Invoice:
    """Create a pending invoice. Prices come from the payload; stock is not touched."""
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")

    errors: list[str] = []
    client_id = str(data.get("client_id") or "").strip()
    client_name = str(data.get("client_name") or "").strip()
    if not client_id:
        errors.append("Client ID is required")
    if not client_name:
        errors.append("Client name is required")

    raw_lines = data.get("products")
    if not isinstance(raw_lines, list) or not raw_lines:
        errors.append("At least one product is required")
        raw_lines = []

    lines = []
    for index, raw in enumerate(raw_lines, start=1):
        if not isinstance(raw, dict):
            errors.append(f"Product {index}: invalid line")
            continue
        product_id = str(raw.get("product_id") or "").strip()
        name = str(raw.get("name") or "").strip()
        if not product_id:
            errors.append(f"Product {index}: product_id is required")
        if not name:
            errors.append(f"Product {index}: name is required")
        quantity = _positive_quantity(raw.get("quantity"), index, errors)
        try:
            unit_price = coerce_int(raw.get("unit_price_cents"), "unit_price_cents")
        except ValidationError:
            unit_price = None
        if unit_price is None or unit_price < 0:
            errors.append(f"Product {index}: valid unit_price_cents is required")
        lines.append((product_id, name, quantity, unit_price))

    remise = _non_negative_cents(data, "remise_cents", errors)
    advance = _non_negative_cents(data, "advance_cents", errors)
    _raise_collected(errors, stock_errors=False)

    _require_client(client_id)

    def _op() -> Invoice:
        now = utcnow()
        invoice = Invoice(
            id=next_id("invoices"),
            client_id=client_id,
            client_name=client_name,
            status=InvoiceStatus.PENDING.value,
            paid=False,
            remise_cents=remise,
            advance_cents=advance,
            display_date=format_display_date(now),
            created_at=now,
        )
        for position, (product_id, name, quantity, unit_price) in enumerate(lines):
            invoice.lines.append(InvoiceLine(
                position=position,
                product_id=product_id,
                name=name,
                quantity=quantity,
                unit_price_cents=unit_price,
                total_cents=quantity * unit_price,
            ))
        _apply_financials(invoice)
        db.session.add(invoice)
        commit_batch()
        logger.info("Invoice %s created (pending)", invoice.id)
        return invoice

    return run_with_retry(_op, retry_on=(IntegrityError,))


def _is_expired(product: Product, today: date) -> bool:
    return product.expiry_date is not None and product.expiry_date < today


def create_confirmed_invoice(data: dict) -> Invoice:
    """
    Create an invoice that debits stock immediately.

    Unit prices come from the product. Status is "paid" when nothing is left
    to pay, otherwise "not paid".
    """
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")

    errors: list[str] = []
    client_id = str(data.get("client_id") or "").strip()
    if not client_id:
        raise ValidationError("Client ID is required")
    client = _require_client(client_id)
    client_name = str(data.get("client_name") or "").strip() or client.name

    raw_lines = data.get("products")
    if not isinstance(raw_lines, list) or not raw_lines:
        raise ValidationError("At least one product is required")

    requested = []
    for index, raw in enumerate(raw_lines, start=1):
        if not isinstance(raw, dict):
            errors.append(f"Product {index}: invalid line")
            continue
        product_id = str(raw.get("product_id") or "").strip()
        if not product_id:
            errors.append(f"Product {index}: product_id is required")
        quantity = _positive_quantity(raw.get("quantity"), index, errors)
        requested.append((index, product_id, quantity))

    remise = _non_negative_cents(data, "remise_cents", errors)
    advance = _non_negative_cents(data, "advance_cents", errors)
    _raise_collected(errors, stock_errors=False)

    def _op() -> Invoice:
        errors: list[str] = []
        stock_errors = False
        projected: dict[str, int] = {}
        resolved = []
        today = utcnow().date()

        for index, product_id, quantity in requested:
            product = db.session.get(Product, product_id)
            if product is None:
                errors.append(f"Product {index}: product {product_id} not found")
                continue
            available = projected.get(product_id, int(product.quantity or 0))
            if available < quantity:
                stock_errors = True
                errors.append(
                    f"Insufficient stock for {product.name}. Available: {available}, Requested: {quantity}"
                )
            if _is_expired(product, today):
                errors.append(f"Product {product.name} has expired")
            if not product.price_cents or product.price_cents <= 0:
                errors.append(f"Product {product.name} has no valid price")
            projected[product_id] = available - quantity
            resolved.append((product, quantity))

        _raise_collected(errors, stock_errors)

        invoice_id = next_id("invoices")
        results = ledger_service.stage_decrements(
            [{"product_id": p.id, "amount": q} for p, q in resolved]
        )
        _raise_ledger_failures(results)

        now = utcnow()
        invoice = Invoice(
            id=invoice_id,
            client_id=client.id,
            client_name=client_name,
            remise_cents=remise,
            advance_cents=advance,
            display_date=format_display_date(now),
            confirmed_at=now,
            created_at=now,
        )
        for position, (product, quantity) in enumerate(resolved):
            invoice.lines.append(InvoiceLine(
                position=position,
                product_id=product.id,
                name=product.name,
                quantity=quantity,
                unit_price_cents=product.price_cents,
                total_cents=quantity * product.price_cents,
            ))
        _apply_financials(invoice)
        invoice.status = payment_status(invoice.rest_cents).value
        invoice.paid = invoice.rest_cents == 0

        db.session.add(invoice)
        commit_batch()
        logger.info("Invoice %s created (%s), %d lines debited", invoice.id, invoice.status, len(resolved))
        return invoice

    return run_with_retry(_op, retry_on=(IntegrityError,))


def confirm_invoice(invoice_id: str) -> Invoice:
    """pending -> confirmed; debits every line from stock in one batch."""
    def _op() -> Invoice:
        invoice = get_invoice(invoice_id)
        if invoice.state != InvoiceStatus.PENDING:
            raise InvoiceStateError(f"Only pending invoices can be confirmed (status: {invoice.status})")
        require_transition(invoice.status, InvoiceStatus.CONFIRMED)

        errors: list[str] = []
        stock_errors = False
        projected: dict[str, int] = {}
        for line in invoice.lines:
            product = db.session.get(Product, line.product_id)
            if product is None:
                errors.append(f"Product {line.name} not found")
                continue
            available = projected.get(product.id, int(product.quantity or 0))
            if available < line.quantity:
                stock_errors = True
                errors.append(
                    f"Insufficient stock for {product.name}. Available: {available}, Requested: {line.quantity}"
                )
            projected[product.id] = available - line.quantity
        _raise_collected(errors, stock_errors)

        results = ledger_service.stage_decrements(
            [{"product_id": line.product_id, "amount": line.quantity} for line in invoice.lines]
        )
        _raise_ledger_failures(results)

        invoice.status = InvoiceStatus.CONFIRMED.value
        invoice.confirmed_at = utcnow()
        invoice.paid = invoice.rest_cents == 0
        commit_batch()
        logger.info("Invoice %s confirmed", invoice.id)
        return invoice

    return run_with_retry(_op)


def _resolve_product(raw: dict) -> Product | None:
    product_id = str(raw.get("product_id") or "").strip()
    if product_id:
        product = db.session.get(Product, product_id)
        if product is not None:
            return product
    name = str(raw.get("name") or "").strip()
    if name:
        return db.session.query(Product).filter(Product.name == name).first()
    return None


def _match_original(originals: list[InvoiceLine], used: set[int], product: Product, name: str) -> InvoiceLine | None:
    """
    Find the original line a new line replaces.

    product_id wins. A name match is only accepted for an original line whose
    product no longer exists; the caller diffs only same-product matches.
    """
    for line in originals:
        if id(line) not in used and line.product_id == product.id:
            used.add(id(line))
            return line
    if not name:
        return None
    for line in originals:
        if id(line) in used or line.name != name:
            continue
        if db.session.get(Product, line.product_id) is None:
            used.add(id(line))
            return line
    return None


def update_invoice(invoice_id: str, data: dict) -> Invoice:
    """
    Edit an invoice's lines and financial fields.

    Debited invoices apply only the quantity difference per line to stock;
    lines dropped from the invoice go back to stock. Any error aborts the
    whole update.
    """
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")

    def _op() -> Invoice:
        invoice = get_invoice(invoice_id)
        debited = is_debited(invoice.status)
        errors: list[str] = []
        stock_errors = False

        remise = _non_negative_cents(data, "remise_cents", errors, default=invoice.remise_cents or 0)
        advance = _non_negative_cents(data, "advance_cents", errors, default=invoice.advance_cents or 0)

        client_name = data.get("client_name")
        if client_name is not None and not str(client_name).strip():
            errors.append("Client name cannot be blank")

        new_lines = None
        increments: list[dict] = []
        decrements: list[dict] = []

        if "products" in data:
            raw_lines = data.get("products")
            if not isinstance(raw_lines, list) or not raw_lines:
                errors.append("At least one product is required")
                raw_lines = []

            originals = list(invoice.lines)
            used: set[int] = set()
            new_lines = []
            for index, raw in enumerate(raw_lines, start=1):
                if not isinstance(raw, dict):
                    errors.append(f"Product {index}: invalid line")
                    continue
                product = _resolve_product(raw)
                if product is None:
                    errors.append(f"Product {index}: product not found")
                    continue
                quantity = _positive_quantity(raw.get("quantity"), index, errors)
                if quantity is None:
                    continue

                name = str(raw.get("name") or "").strip() or product.name
                original = _match_original(originals, used, product, name)
                # A line of a deleted product is replaced, not diffed
                same_product = original is not None and original.product_id == product.id
                original_quantity = original.quantity if same_product else 0
                diff = quantity - original_quantity

                if debited and diff > 0 and int(product.quantity or 0) < diff:
                    stock_errors = True
                    errors.append(
                        f"Insufficient stock for {product.name}. Available: {product.quantity}, Requested: {diff}"
                    )

                unit_price = raw.get("unit_price_cents")
                if unit_price is None:
                    unit_price = product.price_cents
                try:
                    unit_price = coerce_int(unit_price, "unit_price_cents")
                except ValidationError:
                    unit_price = 0
                if unit_price <= 0:
                    errors.append(f"Product {index}: valid price is required")

                if diff > 0:
                    decrements.append({"product_id": product.id, "amount": diff})
                elif diff < 0:
                    increments.append({"product_id": product.id, "amount": -diff})

                new_lines.append((product.id, name, quantity, unit_price))

            for line in originals:
                if id(line) not in used:
                    increments.append({"product_id": line.product_id, "amount": line.quantity})

        _raise_collected(errors, stock_errors)

        if debited:
            # Removed lines whose product is gone are skipped
            restored = ledger_service.stage_increments(increments)
            missing = {r.product_id for r in restored if not r.success}
            if missing:
                logger.warning("Invoice %s: skipped restoring missing products %s", invoice.id, sorted(missing))
            _raise_ledger_failures(ledger_service.stage_decrements(decrements))

        if new_lines is not None:
            invoice.lines.clear()
            for position, (product_id, name, quantity, unit_price) in enumerate(new_lines):
                invoice.lines.append(InvoiceLine(
                    position=position,
                    product_id=product_id,
                    name=name,
                    quantity=quantity,
                    unit_price_cents=unit_price,
                    total_cents=quantity * unit_price,
                ))

        if client_name is not None:
            invoice.client_name = str(client_name).strip()
        invoice.remise_cents = remise
        invoice.advance_cents = advance
        _apply_financials(invoice)

        if debited:
            invoice.status = payment_status(invoice.rest_cents).value
            invoice.paid = invoice.rest_cents == 0

        commit_batch()
        logger.info("Invoice %s updated (%s)", invoice.id, invoice.status)
        return invoice

    return run_with_retry(_op)


def set_payment_status(invoice_id: str, status: str) -> Invoice:
    """
    Mark a debited invoice paid (rest forced to 0) or not paid (rest recomputed).

    This is a manual override: "not paid" is kept even when the recomputed rest
    is 0, so staff can flag an invoice whose payment did not clear.
    """
    target = parse_status(status)
    if target not in (InvoiceStatus.PAID, InvoiceStatus.NOT_PAID):
        raise ValidationError("Status must be 'paid' or 'not paid'")

    def _op() -> Invoice:
        invoice = get_invoice(invoice_id)
        if not is_debited(invoice.status):
            raise InvoiceStateError("Payment status can only be set on confirmed invoices")
        require_transition(invoice.status, target)

        if target == InvoiceStatus.PAID:
            invoice.rest_cents = 0
            invoice.paid = True
        else:
            _apply_financials(invoice)
            invoice.paid = False
        invoice.status = target.value
        commit_batch()
        return invoice

    return run_with_retry(_op)


def delete_invoice(invoice_id: str) -> dict:
    """
    Delete an invoice. Debited invoices return their lines to stock in the
    same batch; products that no longer exist are skipped.
    """
    def _op() -> dict:
        invoice = get_invoice(invoice_id)
        restored = []
        skipped = []
        if is_debited(invoice.status):
            results = ledger_service.stage_increments(
                [{"product_id": line.product_id, "amount": line.quantity} for line in invoice.lines]
            )
            restored = [r.to_dict() for r in results if r.success]
            skipped = [r.product_id for r in results if not r.success]
            if skipped:
                logger.warning("Invoice %s: products no longer exist, not restored: %s", invoice.id, skipped)

        summary = {
            "invoice_id": invoice.id,
            "status": invoice.status,
            "stock_restored": restored,
            "skipped_products": skipped,
        }
        db.session.delete(invoice)
        commit_batch()
        logger.info("Invoice %s deleted", summary["invoice_id"])
        return summary

    return run_with_retry(_op)
