# Overview: Flask API routes for clients.

from flask import Blueprint, request

from ..services import client_service
from .errors import ok

clients_bp = Blueprint("clients", __name__, url_prefix="/api/clients")


@clients_bp.get("")
def list_clients():
    clients = client_service.list_clients()
    return ok([c.to_dict() for c in clients], count=len(clients))


@clients_bp.get("/<client_id>")
def get_client(client_id: str):
    return ok(client_service.get_client(client_id).to_dict())


@clients_bp.post("")
def create_client():
    client = client_service.create_client(request.get_json(silent=True) or {})
    return ok(client.to_dict(), message="Client created successfully", status=201)


@clients_bp.put("/<client_id>")
def update_client(client_id: str):
    client = client_service.update_client(client_id, request.get_json(silent=True) or {})
    return ok(client.to_dict(), message="Client updated successfully")


@clients_bp.delete("/<client_id>")
def delete_client(client_id: str):
    return ok({"id": client_service.delete_client(client_id)}, message="Client deleted successfully")
