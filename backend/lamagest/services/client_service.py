# Overview: Client records; ids come from the "clients" counter.

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Client
from ..validation import ModelValidationPolicy, NotFoundError, validate_payload
from .concurrency import commit_batch, run_with_retry
from .id_service import next_id

CLIENT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "phone", "location"},
    required_on_create={"name"},
)


def get_client(client_id: str) -> Client:
    client = db.session.get(Client, str(client_id or "").strip())
    if client is None:
        raise NotFoundError("Client not found", code="CLIENT_NOT_FOUND")
    return client


def list_clients() -> list[Client]:
    return db.session.query(Client).order_by(Client.created_at.desc(), Client.id.desc()).all()


def create_client(payload: dict) -> Client:
    patch = validate_payload(model=Client, payload=payload, policy=CLIENT_POLICY, partial=False)

    def _op() -> Client:
        client = Client(id=next_id("clients"), **patch)
        db.session.add(client)
        commit_batch()
        return client

    return run_with_retry(_op, retry_on=(IntegrityError,))


def update_client(client_id: str, payload: dict) -> Client:
    patch = validate_payload(model=Client, payload=payload, policy=CLIENT_POLICY, partial=True)

    def _op() -> Client:
        client = get_client(client_id)
        for key, value in patch.items():
            setattr(client, key, value)
        commit_batch()
        return client

    return run_with_retry(_op)


def delete_client(client_id: str) -> str:
    def _op() -> str:
        client = get_client(client_id)
        deleted_id = client.id
        db.session.delete(client)
        commit_batch()
        return deleted_id

    return run_with_retry(_op)
