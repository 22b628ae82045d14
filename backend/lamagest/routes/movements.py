# Overview: Flask API routes for stock movements (stock in, distribution, reversal).

from flask import Blueprint, request

from ..services import movement_service
from .errors import ok

movements_bp = Blueprint("movements", __name__, url_prefix="/api/movements")


@movements_bp.post("")
def create_movement():
    payload = request.get_json(silent=True) or {}
    movement = movement_service.create_movement(payload)
    return ok(movement.to_dict(), message="Stock movement recorded successfully", status=201)


@movements_bp.get("")
def list_movements():
    """
    Query params: type, department, start_date, end_date (YYYY-MM-DD,
    end inclusive), limit (default 50), page (default 1).
    """
    result = movement_service.list_movements(
        movement_type=request.args.get("type"),
        department=request.args.get("department"),
        start_date=request.args.get("start_date"),
        end_date=request.args.get("end_date"),
        limit=request.args.get("limit", 50),
        page=request.args.get("page", 1),
    )
    return ok(
        [m.to_dict() for m in result["movements"]],
        pagination=result["pagination"],
    )


@movements_bp.get("/<movement_id>")
def get_movement(movement_id: str):
    return ok(movement_service.get_movement(movement_id).to_dict())


@movements_bp.get("/<movement_id>/can-delete")
def can_delete_movement(movement_id: str):
    return ok(movement_service.check_movement_deletable(movement_id))


@movements_bp.delete("/<movement_id>")
def delete_movement(movement_id: str):
    summary = movement_service.delete_movement(movement_id)
    return ok(summary, message="Movement deleted and stock restored")
