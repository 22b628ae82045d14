# Overview: Product catalog CRUD and the bulk quantity wrappers over the stock ledger.
"""
Products Service

STOCK:
- quantity is set once, on the new row, by create_product
- every later change goes through ledger_service (add_quantities,
  remove_quantities, movements, invoices)
- update_product refuses quantity
"""
from __future__ import annotations

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    coerce_int,
    enforce_rules_product,
    validate_payload,
)
from .concurrency import commit_batch, run_with_retry
from .id_service import next_id
from . import ledger_service

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "image_url", "unit", "price_cents", "quantity", "expiry_date"},
    required_on_create={"name", "price_cents"},
)

PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "image_url", "unit", "price_cents", "expiry_date"},
)


def _name_taken(name: str, *, exclude_id: str | None = None) -> bool:
    query = db.session.query(Product.id).filter(func.lower(Product.name) == name.lower())
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    return query.first() is not None


def get_product(product_id: str) -> Product:
    product = db.session.get(Product, str(product_id or "").strip())
    if product is None:
        raise NotFoundError("Product not found", code="PRODUCT_NOT_FOUND")
    return product


def list_products(search: str | None = None) -> list[Product]:
    query = db.session.query(Product)
    if search:
        query = query.filter(Product.name.ilike(f"%{search.strip()}%"))
    return query.order_by(Product.name.asc(), Product.id.asc()).all()


def create_product(payload: dict) -> Product:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_CREATE_POLICY, partial=False)
    enforce_rules_product(patch)

    quantity = patch.get("quantity")
    if quantity is None:
        patch["quantity"] = 0
    elif quantity < 0:
        raise ValidationError("quantity cannot be negative")

    if _name_taken(patch["name"]):
        raise ConflictError("Product with this name already exists", code="DUPLICATE")

    def _op() -> Product:
        product = Product(id=next_id("products"), **patch)
        db.session.add(product)
        commit_batch()
        return product

    return run_with_retry(_op, retry_on=(IntegrityError,))


def update_product(product_id: str, payload: dict) -> Product:
    """Update catalog fields. Stock is not editable here."""
    if isinstance(payload, dict) and "quantity" in payload:
        raise ValidationError("quantity can only be changed through stock operations")
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
    enforce_rules_product(patch)

    def _op() -> Product:
        product = get_product(product_id)
        if "name" in patch and _name_taken(patch["name"], exclude_id=product.id):
            raise ConflictError("Product with this name already exists", code="DUPLICATE")
        for key, value in patch.items():
            setattr(product, key, value)
        commit_batch()
        return product

    return run_with_retry(_op)


def delete_product(product_id: str) -> str:
    def _op() -> str:
        product = get_product(product_id)
        deleted_id = product.id
        db.session.delete(product)
        commit_batch()
        return deleted_id

    return run_with_retry(_op)


def _ledger_items(items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError("Products array is required")

    errors: list[str] = []
    normalized = []
    for index, item in enumerate(items, start=1):
        if not isinstance(item, dict) or not str(item.get("product_id") or "").strip() or item.get("quantity") is None:
            errors.append(f"Item {index}: product_id and quantity are required")
            continue
        try:
            amount = coerce_int(item["quantity"], "quantity")
        except ValidationError as exc:
            errors.append(f"Item {index}: {exc.message}")
            continue
        if amount < 0:
            errors.append(f"Item {index}: quantity cannot be negative")
            continue
        normalized.append({"product_id": str(item["product_id"]).strip(), "amount": amount})

    if errors:
        raise ValidationError("Validation failed", errors=errors)
    return normalized


def add_quantities(items) -> list[ledger_service.LedgerResult]:
    return ledger_service.bulk_increment(_ledger_items(items))


def remove_quantities(items) -> list[ledger_service.LedgerResult]:
    return ledger_service.bulk_decrement(_ledger_items(items))
