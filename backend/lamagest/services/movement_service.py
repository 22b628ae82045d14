# Overview: Stock-in and distribution movements with a time-boxed reversal.

"""
Lama Gest Stock Movement Engine

================================================================================
LIFECYCLE:
    validating -> committed -> reversed
    validating -> rejected

    validating: shape + stock projection; nothing is written
    committed:  movement row and its ledger deltas saved in one batch
    reversed:   inverse ledger deltas and row deletion saved in one batch,
                only while hours_since(timestamp) <= MOVEMENT_REVERSAL_WINDOW_HOURS

RULES:
1. Every validation error is collected before the movement is rejected
2. Projected stock chains across repeated products in the same movement
3. Line snapshots (previous_stock/new_stock) come from the ledger results of
   the creating batch
4. A reversal that cannot restore every line keeps the movement and changes
   no stock
================================================================================
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, time as dtime
from typing import Optional

from flask import current_app, has_app_context

from ..extensions import db
from ..models import MovementType, Product, StockMovement, StockMovementLine
from ..validation import (
    ConflictError,
    InsufficientStockError,
    NotFoundError,
    TemporalConstraintError,
    ValidationError,
    coerce_date,
    coerce_int,
)
from lamagest.time_utils import utcnow, format_display_date, hours_between, to_utc_z
from .concurrency import commit_batch, run_with_retry
from .id_service import next_id
from . import ledger_service


logger = logging.getLogger(__name__)

DEFAULT_REVERSAL_WINDOW_HOURS = 24.0
MAX_PAGE_SIZE = 200


def reversal_window_hours() -> float:
    if has_app_context():
        return float(current_app.config.get("MOVEMENT_REVERSAL_WINDOW_HOURS", DEFAULT_REVERSAL_WINDOW_HOURS))
    return DEFAULT_REVERSAL_WINDOW_HOURS


def _blank(value) -> bool:
    return value is None or not str(value).strip()


def _parse_type(value) -> MovementType | None:
    try:
        return MovementType(str(value or "").strip())
    except ValueError:
        return None


def validate_movement_payload(data: dict) -> dict:
    """
    Shape validation for create_movement.

    Returns a normalized payload or raises ValidationError listing every
    problem found.
    """
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")

    errors: list[str] = []

    movement_type = _parse_type(data.get("type"))
    if movement_type is None:
        errors.append("Movement type must be 'stock_in' or 'distribution'")

    raw_lines = data.get("products")
    if not isinstance(raw_lines, list) or not raw_lines:
        errors.append("At least one product is required")
        raw_lines = []

    if _blank(data.get("stock_manager")):
        errors.append("Stock manager is required")

    if movement_type == MovementType.DISTRIBUTION and _blank(data.get("department")):
        errors.append("Department is required for distribution")
    if movement_type == MovementType.STOCK_IN and _blank(data.get("supplier")):
        errors.append("Supplier is required for stock in")

    lines = []
    for index, raw in enumerate(raw_lines, start=1):
        if not isinstance(raw, dict):
            errors.append(f"Product {index}: invalid line")
            continue
        product_id = str(raw.get("product_id") or "").strip()
        if not product_id:
            errors.append(f"Product {index}: product_id is required")
        try:
            quantity = coerce_int(raw.get("quantity"), "quantity")
        except ValidationError:
            quantity = None
        if quantity is None or quantity <= 0:
            errors.append(f"Product {index}: quantity must be a positive integer")

        unit_price = raw.get("unit_price_cents")
        if unit_price is not None:
            try:
                unit_price = coerce_int(unit_price, "unit_price_cents")
            except ValidationError:
                unit_price = -1
            if unit_price < 0:
                errors.append(f"Product {index}: unit_price_cents must be a non-negative integer")

        lines.append({"product_id": product_id, "quantity": quantity, "unit_price_cents": unit_price})

    if errors:
        raise ValidationError("Validation failed", errors=errors)

    return {
        "type": movement_type,
        "products": lines,
        "department": (str(data["department"]).strip() if not _blank(data.get("department")) else None),
        "supplier": (str(data["supplier"]).strip() if not _blank(data.get("supplier")) else None),
        "stock_manager": str(data["stock_manager"]).strip(),
        "notes": str(data.get("notes") or "").strip(),
    }


def _project_stock(movement_type: MovementType, lines: list[dict]) -> dict[str, Product]:
    """
    Read every product and check the projected stock per line.

    Raises before anything is staged. Returns the loaded products by id.
    """
    errors: list[str] = []
    stock_errors = False
    products: dict[str, Product] = {}
    projected: dict[str, int] = {}

    for line in lines:
        product_id = line["product_id"]
        product = products.get(product_id) or db.session.get(Product, product_id)
        if product is None:
            errors.append(f"Product not found: {product_id}")
            continue
        products[product_id] = product

        current = projected.get(product_id, int(product.quantity or 0))
        if movement_type == MovementType.DISTRIBUTION:
            new_stock = current - line["quantity"]
            if new_stock < 0:
                stock_errors = True
                errors.append(
                    f"Insufficient stock for {product.name}. Available: {current}, Requested: {line['quantity']}"
                )
        else:
            new_stock = current + line["quantity"]
        projected[product_id] = new_stock

    if errors:
        if stock_errors:
            raise InsufficientStockError(errors[0] if len(errors) == 1 else "Insufficient stock", errors=errors)
        raise NotFoundError("Product not found", code="PRODUCT_NOT_FOUND", errors=errors)
    return products


def create_movement(data: dict, *, now: Optional[datetime] = None) -> StockMovement:
    """
    Record a stock_in or distribution movement and apply its stock deltas.

    The ledger writes and the movement row commit together; the whole
    read-validate-stage-commit cycle is re-run on optimistic-lock conflicts.
    """
    payload = validate_movement_payload(data)
    movement_type = payload["type"]
    lines = payload["products"]

    def _op() -> StockMovement:
        _project_stock(movement_type, lines)

        movement_id = next_id("stockMovements")

        items = [{"product_id": l["product_id"], "amount": l["quantity"]} for l in lines]
        if movement_type == MovementType.STOCK_IN:
            results = ledger_service.stage_increments(items)
        else:
            results = ledger_service.stage_decrements(items)

        failures = ledger_service.failed(results)
        if failures:
            # Stock moved between projection and staging
            db.session.rollback()
            raise InsufficientStockError(
                "Insufficient stock",
                errors=[f.error for f in failures],
            )

        timestamp = now or utcnow()
        movement = StockMovement(
            id=movement_id,
            type=movement_type.value,
            department=payload["department"] if movement_type == MovementType.DISTRIBUTION else None,
            supplier=payload["supplier"] if movement_type == MovementType.STOCK_IN else None,
            stock_manager=payload["stock_manager"],
            notes=payload["notes"],
            display_date=format_display_date(timestamp),
            timestamp=timestamp,
        )

        total_value = 0
        total_items = 0
        for position, (line, result) in enumerate(zip(lines, results)):
            product = db.session.get(Product, line["product_id"])
            unit_price = line["unit_price_cents"]
            if unit_price is None:
                unit_price = int(product.price_cents or 0)
            line_total = unit_price * line["quantity"]
            if movement_type == MovementType.STOCK_IN:
                total_value += line_total
            total_items += line["quantity"]

            movement.lines.append(StockMovementLine(
                position=position,
                product_id=product.id,
                product_name=product.name,
                unit=product.unit or "units",
                quantity=line["quantity"],
                unit_price_cents=unit_price,
                total_cents=line_total,
                previous_stock=result.old_quantity,
                new_stock=result.new_quantity,
            ))

        movement.total_value_cents = total_value
        movement.total_items = total_items

        db.session.add(movement)
        commit_batch()
        logger.info("Movement %s committed (%s, %d lines)", movement.id, movement.type, len(lines))
        return movement

    return run_with_retry(_op)


def get_movement(movement_id: str) -> StockMovement:
    movement = db.session.get(StockMovement, str(movement_id or "").strip())
    if movement is None:
        raise NotFoundError("Movement not found", code="MOVEMENT_NOT_FOUND")
    return movement


def _format_remaining(hours: float) -> str:
    if hours <= 0:
        return "Expired"
    whole = int(math.floor(hours))
    minutes = int(math.floor((hours - whole) * 60))
    return f"{whole}h {minutes}m"


def check_movement_deletable(movement_id: str, *, now: Optional[datetime] = None) -> dict:
    movement = get_movement(movement_id)
    current = now or utcnow()
    window = reversal_window_hours()
    elapsed = hours_between(movement.timestamp, current)
    remaining = max(0.0, window - elapsed)
    can_delete = elapsed <= window
    return {
        "can_delete": can_delete,
        "movement_id": movement.id,
        "movement_time": to_utc_z(movement.timestamp),
        "current_time": to_utc_z(current),
        "hours_difference": round(elapsed, 2),
        "time_remaining": round(remaining, 2),
        "time_remaining_formatted": _format_remaining(remaining),
        "is_expired": not can_delete,
    }


def delete_movement(movement_id: str, *, now: Optional[datetime] = None) -> dict:
    """
    Reverse a movement's stock deltas and delete it.

    Raises:
        NotFoundError (MOVEMENT_NOT_FOUND)
        TemporalConstraintError (MOVEMENT_TOO_OLD) outside the reversal window
        ConflictError (STOCK_RESTORATION_FAILED) if any line cannot be reversed
    """
    def _op() -> dict:
        movement = get_movement(movement_id)
        current = now or utcnow()
        window = reversal_window_hours()
        elapsed = hours_between(movement.timestamp, current)
        if elapsed > window:
            raise TemporalConstraintError(
                f"Cannot delete movement older than {window:g} hours",
                errors=[f"Movement is {elapsed:.1f} hours old"],
            )

        items = [{"product_id": line.product_id, "amount": line.quantity} for line in movement.lines]
        if movement.movement_type == MovementType.STOCK_IN:
            results = ledger_service.stage_decrements(items)
        else:
            results = ledger_service.stage_increments(items)

        failures = ledger_service.failed(results)
        if failures:
            db.session.rollback()
            logger.warning(
                "Stock restoration failed for movement %s: %s",
                movement_id, "; ".join(f.error for f in failures),
            )
            raise ConflictError(
                "Failed to restore stock for some products",
                code="STOCK_RESTORATION_FAILED",
                errors=[f.error for f in failures],
                details={"failed_restorations": [f.to_dict() for f in failures]},
            )

        summary = {
            "movement_id": movement.id,
            "type": movement.type,
            "deleted_at": to_utc_z(current),
            "products_affected": len(items),
            "movement_age_hours": round(elapsed, 2),
            "stock_restoration": [r.to_dict() for r in results],
        }
        db.session.delete(movement)
        commit_batch()
        logger.info("Movement %s reversed and deleted", summary["movement_id"])
        return summary

    return run_with_retry(_op)


def list_movements(
    *,
    movement_type: str | None = None,
    department: str | None = None,
    start_date=None,
    end_date=None,
    limit: int = 50,
    page: int = 1,
) -> dict:
    """
    Movements newest first with a pagination block.

    end_date is inclusive to the end of that day.
    """
    limit = coerce_int(limit, "limit")
    page = coerce_int(page, "page")
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
    if page < 1:
        raise ValidationError("page must be >= 1")

    query = db.session.query(StockMovement)
    if movement_type:
        parsed = _parse_type(movement_type)
        if parsed is None:
            raise ValidationError("Movement type must be 'stock_in' or 'distribution'")
        query = query.filter(StockMovement.type == parsed.value)
    if department:
        query = query.filter(StockMovement.department == department)

    start = coerce_date(start_date, "start_date")
    end = coerce_date(end_date, "end_date")
    if start:
        query = query.filter(StockMovement.timestamp >= datetime.combine(start, dtime.min))
    if end:
        query = query.filter(StockMovement.timestamp <= datetime.combine(end, dtime.max))

    total = query.count()
    movements = (
        query.order_by(StockMovement.timestamp.desc(), StockMovement.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    pages = math.ceil(total / limit) if total else 0
    return {
        "movements": movements,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": pages,
            "has_more": page < pages,
        },
    }
