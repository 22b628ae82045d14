from __future__ import annotations

from ..extensions import db
from lamagest.time_utils import to_utc_z, to_iso_date

class Product(db.Model):
    """
    Product master data and the authoritative on-hand quantity.

    STOCK OWNERSHIP:
    Product.quantity is the single canonical stock field. Only the stock
    ledger (services/ledger_service.py) writes it after creation.
    - Movements, invoice confirmation/edit/deletion all go through
      ledger_service.stage_increments / stage_decrements
    - quantity >= 0 after every committed batch

    CONCURRENCY:
    version_id is the optimistic-lock column. Two batches that read the same
    version and both write quantity cannot both commit; the loser raises
    StaleDataError and its whole operation is re-run by run_with_retry.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_name", "name"),
    )

    # Sequential human-readable id, e.g. "prod-007"
    id = db.Column(db.String(32), primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    image_url = db.Column(db.String(512), nullable=True)
    unit = db.Column(db.String(32), nullable=False, default="units")

    # Authoritative storage in cents (frontend may only format for display)
    price_cents = db.Column(db.Integer, nullable=False)

    quantity = db.Column(db.Integer, nullable=False, default=0)

    expiry_date = db.Column(db.Date, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id!r} name={self.name!r} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "image_url": self.image_url,
            "unit": self.unit,
            "price_cents": self.price_cents,
            "quantity": self.quantity,
            "expiry_date": to_iso_date(self.expiry_date),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Counter(db.Model):
    """
    Atomic per-kind id counters.

    WHY: Prevent duplicate human-readable ids when several requests issue
    product/movement/client ids at the same time. One row per kind; count is
    the last number handed out and never decreases.
    """
    __tablename__ = "counters"

    kind = db.Column(db.String(32), primary_key=True)
    count = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "count": self.count,
            "updated_at": to_utc_z(self.updated_at),
        }


class Category(db.Model):
    """Product category labels. Names are unique; type defaults to "custom"."""
    __tablename__ = "categories"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_categories_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    type = db.Column(db.String(32), nullable=False, default="custom")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
