# Overview: Stock ledger; the only code path that writes Product.quantity.

from __future__ import annotations

import logging
from dataclasses import dataclass, asdict
from typing import Iterable, Optional

from ..extensions import db
from ..models import Product
from ..validation import coerce_int, ValidationError
from .concurrency import commit_batch, lock_for_update, run_with_retry


logger = logging.getLogger(__name__)

"""
Lama Gest Stock Ledger Invariants (authoritative)

- Product.quantity is written here and nowhere else (product creation sets the
  initial value on the new row only).
- Per item: a missing product or insufficient stock is a per-item failure;
  failing items stage nothing and sibling items still proceed.
- Repeated product ids in one call chain on the staged quantity.
- stage_* functions never commit; bulk_* functions commit the whole call as
  one batch and return the per-item results.
- quantity >= 0 after every committed batch.
"""


@dataclass
class LedgerResult:
    product_id: str
    success: bool
    product_name: Optional[str] = None
    old_quantity: Optional[int] = None
    new_quantity: Optional[int] = None
    amount: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}


def _normalize_item(item) -> tuple[str, int]:
    if not isinstance(item, dict):
        raise ValidationError("Each item must be an object with product_id and amount")
    product_id = str(item.get("product_id") or "").strip()
    amount = coerce_int(item.get("amount"), "amount")
    return product_id, amount


def _load_product(product_id: str) -> Product | None:
    if not product_id:
        return None
    return lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()


def _stage(items: Iterable[dict], sign: int) -> list[LedgerResult]:
    results: list[LedgerResult] = []
    for item in items:
        product_id, amount = _normalize_item(item)

        if amount < 0:
            results.append(LedgerResult(product_id=product_id, success=False, amount=amount,
                                        error="Amount must be zero or positive"))
            continue

        product = _load_product(product_id)
        if product is None:
            results.append(LedgerResult(product_id=product_id, success=False, amount=amount,
                                        error="Product not found"))
            continue

        old = int(product.quantity or 0)
        if sign < 0 and old < amount:
            results.append(LedgerResult(
                product_id=product_id,
                product_name=product.name,
                success=False,
                old_quantity=old,
                amount=amount,
                error=f"Insufficient stock for {product.name}. Available: {old}, Requested: {amount}",
            ))
            continue

        new = old + sign * amount
        # Identity map: later items for the same product see this value
        product.quantity = new
        results.append(LedgerResult(
            product_id=product_id,
            product_name=product.name,
            success=True,
            old_quantity=old,
            new_quantity=new,
            amount=amount,
        ))
    return results


def stage_increments(items: Iterable[dict]) -> list[LedgerResult]:
    """Stage quantity += amount per item without committing."""
    return _stage(items, +1)


def stage_decrements(items: Iterable[dict]) -> list[LedgerResult]:
    """Stage quantity -= amount per item without committing."""
    return _stage(items, -1)


def failed(results: list[LedgerResult]) -> list[LedgerResult]:
    return [r for r in results if not r.success]


def _bulk(items: list[dict], stage) -> list[LedgerResult]:
    items = list(items or [])

    def _op() -> list[LedgerResult]:
        results = stage(items)
        commit_batch()
        ok = len(results) - len(failed(results))
        logger.info("Ledger batch committed: %d/%d items applied", ok, len(results))
        return results

    return run_with_retry(_op)


def bulk_increment(items: list[dict]) -> list[LedgerResult]:
    """
    Add stock for each {product_id, amount}; commit once.

    Raises PersistenceError if the batch cannot be committed (nothing kept).
    """
    return _bulk(items, stage_increments)


def bulk_decrement(items: list[dict]) -> list[LedgerResult]:
    """
    Remove stock for each {product_id, amount}; commit once.

    Items that would drive quantity below zero fail individually with an
    "Insufficient stock" error and leave that product untouched.
    """
    return _bulk(items, stage_decrements)
