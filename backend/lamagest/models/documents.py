from __future__ import annotations

from enum import Enum

from ..extensions import db
from lamagest.time_utils import to_utc_z


class MovementType(str, Enum):
    STOCK_IN = "stock_in"
    DISTRIBUTION = "distribution"


class InvoiceStatus(str, Enum):
    """
    Invoice lifecycle states.

    PENDING:   created, no stock debited
    CONFIRMED: stock debited via confirm_invoice
    PAID / NOT_PAID: stock debited; payment state derived from rest_cents
    """
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PAID = "paid"
    NOT_PAID = "not paid"


class StockMovement(db.Model):
    """
    Stock-in or distribution event.

    LIFECYCLE:
    1. (validating) - never persisted
    2. COMMITTED: row written in the same batch as its ledger deltas
    3. REVERSED: row deleted in the same batch as the inverse ledger deltas,
       only within the reversal window (24h by default)

    IMMUTABLE: lines are snapshots (previous_stock/new_stock/unit price) taken
    from the ledger results of the creating batch.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_type_timestamp", "type", "timestamp"),
        db.Index("ix_stock_movements_department_timestamp", "department", "timestamp"),
    )

    # Sequential id, e.g. "MOV000042"
    id = db.Column(db.String(32), primary_key=True)

    type = db.Column(db.String(16), nullable=False)

    department = db.Column(db.String(64), nullable=True)
    supplier = db.Column(db.String(255), nullable=True)
    stock_manager = db.Column(db.String(255), nullable=False)
    notes = db.Column(db.Text, nullable=False, default="")

    total_value_cents = db.Column(db.Integer, nullable=False, default=0)
    total_items = db.Column(db.Integer, nullable=False, default=0)

    # Human-readable dd/mm/yyyy next to the canonical timestamp
    display_date = db.Column(db.String(10), nullable=False)
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    lines = db.relationship(
        "StockMovementLine",
        back_populates="movement",
        cascade="all, delete-orphan",
        order_by="StockMovementLine.position",
    )

    @property
    def movement_type(self) -> MovementType:
        return MovementType(self.type)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "movement_id": self.id,
            "type": self.type,
            "department": self.department,
            "supplier": self.supplier,
            "stock_manager": self.stock_manager,
            "notes": self.notes,
            "products": [line.to_dict() for line in self.lines],
            "total_value_cents": self.total_value_cents,
            "total_items": self.total_items,
            "date": self.display_date,
            "timestamp": to_utc_z(self.timestamp),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovementLine(db.Model):
    """Per-product snapshot of a movement line."""
    __tablename__ = "stock_movement_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    movement_id = db.Column(db.String(32), db.ForeignKey("stock_movements.id", ondelete="CASCADE"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    # Snapshot only: the product may be deleted later
    product_id = db.Column(db.String(32), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)
    unit = db.Column(db.String(32), nullable=False, default="units")

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    previous_stock = db.Column(db.Integer, nullable=False)
    new_stock = db.Column(db.Integer, nullable=False)

    movement = db.relationship("StockMovement", back_populates="lines")

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "unit": self.unit,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_cents": self.total_cents,
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
        }


class Invoice(db.Model):
    """
    Client invoice.

    FINANCIALS (all cents):
    - total = sum(line.quantity * line.unit_price)
    - total_after_discount = total - remise
    - rest = max(0, total_after_discount - advance)

    STOCK:
    Stock is debited at confirmation (pending -> confirmed) or when the
    invoice is created already confirmed (status paid / not paid). Edits of a
    debited invoice apply only the per-line quantity difference.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.Index("ix_invoices_status_created", "status", "created_at"),
    )

    # Scan-issued id, e.g. "INV-003"
    id = db.Column(db.String(32), primary_key=True)

    client_id = db.Column(db.String(32), nullable=False, index=True)
    client_name = db.Column(db.String(255), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=InvoiceStatus.PENDING.value)
    paid = db.Column(db.Boolean, nullable=False, default=False)

    remise_cents = db.Column(db.Integer, nullable=False, default=0)
    advance_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    total_after_discount_cents = db.Column(db.Integer, nullable=False, default=0)
    rest_cents = db.Column(db.Integer, nullable=False, default=0)

    display_date = db.Column(db.String(10), nullable=False)
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    lines = db.relationship(
        "InvoiceLine",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceLine.position",
    )

    @property
    def state(self) -> InvoiceStatus:
        return InvoiceStatus(self.status)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.id,
            "client_id": self.client_id,
            "client_name": self.client_name,
            "products": [line.to_dict() for line in self.lines],
            "remise_cents": self.remise_cents,
            "advance_cents": self.advance_cents,
            "total_cents": self.total_cents,
            "total_after_discount_cents": self.total_after_discount_cents,
            "rest_cents": self.rest_cents,
            "paid": self.paid,
            "status": self.status,
            "date": self.display_date,
            "confirmed_at": to_utc_z(self.confirmed_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InvoiceLine(db.Model):
    __tablename__ = "invoice_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.String(32), db.ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    product_id = db.Column(db.String(32), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)

    invoice = db.relationship("Invoice", back_populates="lines")

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_cents": self.total_cents,
        }
