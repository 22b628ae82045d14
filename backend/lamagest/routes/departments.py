# Overview: Flask API routes for departments (delete deactivates, /hard removes).

from flask import Blueprint, request

from ..services import department_service
from .errors import ok

departments_bp = Blueprint("departments", __name__, url_prefix="/api/departments")


@departments_bp.get("")
def list_departments():
    include_inactive = request.args.get("include_inactive", "").lower() in {"1", "true", "yes"}
    departments = department_service.list_departments(include_inactive=include_inactive)
    return ok([d.to_dict() for d in departments], count=len(departments))


@departments_bp.get("/search/<path:query>")
def search_departments(query: str):
    departments = department_service.search_departments(query)
    return ok([d.to_dict() for d in departments], count=len(departments))


@departments_bp.get("/<int:department_id>")
def get_department(department_id: int):
    return ok(department_service.get_department(department_id).to_dict())


@departments_bp.post("")
def create_department():
    department = department_service.create_department(request.get_json(silent=True) or {})
    return ok(department.to_dict(), message="Department created successfully", status=201)


@departments_bp.put("/<int:department_id>")
def update_department(department_id: int):
    department = department_service.update_department(department_id, request.get_json(silent=True) or {})
    return ok(department.to_dict(), message="Department updated successfully")


@departments_bp.delete("/<int:department_id>")
def deactivate_department(department_id: int):
    department = department_service.deactivate_department(department_id)
    return ok(department.to_dict(), message="Department deactivated successfully")


@departments_bp.patch("/bulk")
def bulk_update_departments():
    data = request.get_json(silent=True) or {}
    departments = department_service.bulk_update_departments(data.get("department_ids"), data.get("update_data"))
    return ok(
        [d.to_dict() for d in departments],
        message=f"{len(departments)} departments updated successfully",
        count=len(departments),
    )


@departments_bp.delete("/<int:department_id>/hard")
def hard_delete_department(department_id: int):
    department_service.hard_delete_department(department_id)
    return ok(None, message="Department permanently deleted")
