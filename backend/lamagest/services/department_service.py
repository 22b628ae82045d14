# Overview: Departments that receive distribution movements (soft delete, hard delete when unused).

from __future__ import annotations

import re

from sqlalchemy import func
from ..extensions import db
from ..models import Department, StockMovement
from ..validation import ConflictError, ModelValidationPolicy, NotFoundError, ValidationError, validate_payload
from .concurrency import commit_batch, run_with_retry

DEPARTMENT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "icon", "color", "is_active"},
    required_on_create={"name", "icon", "color"},
)

COLOR_PATTERN = re.compile(r"^#(?:[0-9A-Fa-f]{3}|[0-9A-Fa-f]{6})$")


def _validate_department_patch(payload: dict, *, partial: bool) -> dict:
    """
    Column metadata covers required/blank/length (name <= 50,
    description <= 200); color format is checked here.
    """
    patch = validate_payload(model=Department, payload=payload, policy=DEPARTMENT_POLICY, partial=partial)
    if "color" in patch and not COLOR_PATTERN.match(patch["color"] or ""):
        raise ValidationError("Color must be a valid hex color code")
    if patch.get("description") == "":
        patch["description"] = None
    return patch


def _name_taken(name: str, *, exclude_id: int | None = None) -> bool:
    query = db.session.query(Department.id).filter(func.lower(Department.name) == name.lower())
    if exclude_id is not None:
        query = query.filter(Department.id != exclude_id)
    return query.first() is not None


def get_department(department_id) -> Department:
    department = db.session.get(Department, department_id)
    if department is None:
        raise NotFoundError("Department not found", code="DEPARTMENT_NOT_FOUND")
    return department


def list_departments(include_inactive: bool = False) -> list[Department]:
    query = db.session.query(Department)
    if not include_inactive:
        query = query.filter(Department.is_active.is_(True))
    return query.order_by(Department.name.asc()).all()


def create_department(payload: dict) -> Department:
    patch = _validate_department_patch(payload, partial=False)
    patch.setdefault("is_active", True)

    def _op() -> Department:
        if _name_taken(patch["name"]):
            raise ConflictError("Department with this name already exists", code="DUPLICATE")
        department = Department(**patch)
        db.session.add(department)
        commit_batch()
        return department

    return run_with_retry(_op)


def update_department(department_id, payload: dict) -> Department:
    patch = _validate_department_patch(payload, partial=True)

    def _op() -> Department:
        department = get_department(department_id)
        if "name" in patch and _name_taken(patch["name"], exclude_id=department.id):
            raise ConflictError("Department with this name already exists", code="DUPLICATE")
        for key, value in patch.items():
            setattr(department, key, value)
        commit_batch()
        return department

    return run_with_retry(_op)


def deactivate_department(department_id) -> Department:
    def _op() -> Department:
        department = get_department(department_id)
        department.is_active = False
        commit_batch()
        return department

    return run_with_retry(_op)


def search_departments(query: str) -> list[Department]:
    """Active departments whose name contains query, case-insensitively."""
    needle = (query or "").strip().lower()
    q = db.session.query(Department).filter(Department.is_active.is_(True))
    if needle:
        q = q.filter(func.lower(Department.name).contains(needle, autoescape=True))
    return q.order_by(Department.name.asc()).all()


def bulk_update_departments(department_ids, update_data) -> list[Department]:
    """
    Apply one patch to several departments in a single batch.

    Keys outside the writable fields are dropped before validation. A name can
    only be set on one department at a time since names are unique.
    """
    if not isinstance(department_ids, list) or not department_ids:
        raise ValidationError("department_ids array is required")
    if not isinstance(update_data, dict):
        update_data = {}
    filtered = {k: v for k, v in update_data.items() if k in DEPARTMENT_POLICY.writable_fields}
    if not filtered:
        raise ValidationError("No valid fields to update")
    patch = _validate_department_patch(filtered, partial=True)

    ids = list(dict.fromkeys(department_ids))
    if "name" in patch and len(ids) > 1:
        raise ConflictError("Department with this name already exists", code="DUPLICATE")

    def _op() -> list[Department]:
        departments = [get_department(department_id) for department_id in ids]
        if "name" in patch and _name_taken(patch["name"], exclude_id=departments[0].id):
            raise ConflictError("Department with this name already exists", code="DUPLICATE")
        for department in departments:
            for key, value in patch.items():
                setattr(department, key, value)
        commit_batch()
        return departments

    return run_with_retry(_op)


def hard_delete_department(department_id) -> None:
    """Remove a department row; refused while any movement names it."""
    def _op() -> None:
        department = get_department(department_id)
        used = (
            db.session.query(StockMovement.id)
            .filter(StockMovement.department == department.name)
            .first()
        )
        if used is not None:
            raise ValidationError("Cannot delete department. It is being used in stock movements.")
        db.session.delete(department)
        commit_batch()

    return run_with_retry(_op)
