# Overview: Product category labels with unique names.

from __future__ import annotations

import logging

from sqlalchemy import func

from ..extensions import db
from ..models import Category
from ..validation import ConflictError, ModelValidationPolicy, NotFoundError, validate_payload
from .concurrency import commit_batch, run_with_retry


logger = logging.getLogger(__name__)

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "type"},
    required_on_create={"name"},
)


def _name_taken(name: str, *, exclude_id: int | None = None) -> bool:
    query = db.session.query(Category.id).filter(func.lower(Category.name) == name.lower())
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    return query.first() is not None


def get_category(category_id) -> Category:
    category = db.session.get(Category, category_id)
    if category is None:
        raise NotFoundError("Category not found", code="CATEGORY_NOT_FOUND")
    return category


def list_categories() -> list[Category]:
    return db.session.query(Category).order_by(Category.name.asc()).all()


def create_category(payload: dict) -> Category:
    patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)
    patch.setdefault("type", "custom")

    def _op() -> Category:
        if _name_taken(patch["name"]):
            raise ConflictError("Category already exists", code="DUPLICATE")
        category = Category(**patch)
        db.session.add(category)
        commit_batch()
        logger.info("Category %s created", category.name)
        return category

    return run_with_retry(_op)


def update_category(category_id, payload: dict) -> Category:
    patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=True)

    def _op() -> Category:
        category = get_category(category_id)
        if "name" in patch and _name_taken(patch["name"], exclude_id=category.id):
            raise ConflictError("Category name already exists", code="DUPLICATE")
        for key, value in patch.items():
            setattr(category, key, value)
        commit_batch()
        return category

    return run_with_retry(_op)


def delete_category(category_id) -> int:
    def _op() -> int:
        category = get_category(category_id)
        deleted_id = category.id
        db.session.delete(category)
        commit_batch()
        return deleted_id

    return run_with_retry(_op)
