# Overview: Flask API routes for products and bulk quantity changes.

from flask import Blueprint, request

from ..services import product_service
from .errors import ok

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products():
    products = product_service.list_products(search=request.args.get("q"))
    return ok([p.to_dict() for p in products], count=len(products))


@products_bp.get("/<product_id>")
def get_product(product_id: str):
    return ok(product_service.get_product(product_id).to_dict())


@products_bp.post("")
def create_product():
    payload = request.get_json(silent=True) or {}
    product = product_service.create_product(payload)
    return ok(product.to_dict(), message="Product created successfully", status=201)


@products_bp.put("/<product_id>")
def update_product(product_id: str):
    payload = request.get_json(silent=True) or {}
    product = product_service.update_product(product_id, payload)
    return ok(product.to_dict(), message="Product updated successfully")


@products_bp.delete("/<product_id>")
def delete_product(product_id: str):
    deleted_id = product_service.delete_product(product_id)
    return ok({"id": deleted_id}, message="Product deleted successfully")


def _bulk_response(results, verb: str):
    failures = [r for r in results if not r.success]
    return ok(
        [r.to_dict() for r in results],
        message=f"{verb} {len(results) - len(failures)} of {len(results)} products",
        success_count=len(results) - len(failures),
        failure_count=len(failures),
    )


@products_bp.post("/add-quantities")
def add_quantities():
    """
    Body: {"products": [{"product_id": "prod-001", "quantity": 5}, ...]}

    Per-item failures (unknown product) are reported in data; the call itself
    succeeds.
    """
    payload = request.get_json(silent=True) or {}
    return _bulk_response(product_service.add_quantities(payload.get("products")), "Updated")


@products_bp.post("/remove-quantities")
def remove_quantities():
    payload = request.get_json(silent=True) or {}
    return _bulk_response(product_service.remove_quantities(payload.get("products")), "Updated")
