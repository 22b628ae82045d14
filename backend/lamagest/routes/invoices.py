# Overview: Flask API routes for invoices and their stock effects.

from flask import Blueprint, request

from ..services import invoice_service
from .errors import ok

invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


@invoices_bp.post("")
def create_invoice():
    payload = request.get_json(silent=True) or {}
    invoice = invoice_service.create_invoice(payload)
    return ok(invoice.to_dict(), message="Invoice created successfully", status=201)


@invoices_bp.post("/confirmed")
def create_confirmed_invoice():
    payload = request.get_json(silent=True) or {}
    invoice = invoice_service.create_confirmed_invoice(payload)
    return ok(invoice.to_dict(), message="Invoice created and stock updated", status=201)


@invoices_bp.get("")
def list_invoices():
    term = request.args.get("q")
    if term:
        invoices = invoice_service.search_invoices(term)
    else:
        invoices = invoice_service.list_invoices(
            status=request.args.get("status"),
            client_id=request.args.get("client_id"),
        )
    return ok([i.to_dict() for i in invoices], count=len(invoices))


@invoices_bp.get("/<invoice_id>")
def get_invoice(invoice_id: str):
    return ok(invoice_service.get_invoice(invoice_id).to_dict())


@invoices_bp.put("/<invoice_id>")
def update_invoice(invoice_id: str):
    payload = request.get_json(silent=True) or {}
    invoice = invoice_service.update_invoice(invoice_id, payload)
    return ok(invoice.to_dict(), message="Invoice updated successfully")


@invoices_bp.post("/<invoice_id>/confirm")
def confirm_invoice(invoice_id: str):
    invoice = invoice_service.confirm_invoice(invoice_id)
    return ok(invoice.to_dict(), message="Invoice confirmed and stock updated")


@invoices_bp.patch("/<invoice_id>/status")
def set_payment_status(invoice_id: str):
    payload = request.get_json(silent=True) or {}
    invoice = invoice_service.set_payment_status(invoice_id, payload.get("status"))
    return ok(invoice.to_dict(), message="Invoice status updated")


@invoices_bp.delete("/<invoice_id>")
def delete_invoice(invoice_id: str):
    summary = invoice_service.delete_invoice(invoice_id)
    return ok(summary, message="Invoice deleted successfully")
