# Overview: Flask API routes for product categories.

from flask import Blueprint, request

from ..services import category_service
from .errors import ok

categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


@categories_bp.get("")
def list_categories():
    categories = category_service.list_categories()
    return ok([c.to_dict() for c in categories], count=len(categories))


@categories_bp.post("")
def create_category():
    category = category_service.create_category(request.get_json(silent=True) or {})
    return ok(category.to_dict(), message="Category created successfully", status=201)


@categories_bp.put("/<int:category_id>")
def update_category(category_id: int):
    category = category_service.update_category(category_id, request.get_json(silent=True) or {})
    return ok(category.to_dict(), message="Category updated successfully")


@categories_bp.delete("/<int:category_id>")
def delete_category(category_id: int):
    return ok({"id": category_service.delete_category(category_id)}, message="Category deleted successfully")
