from __future__ import annotations

from ..extensions import db
from lamagest.time_utils import to_utc_z


class Client(db.Model):
    """Invoice recipient. Ids come from the "clients" counter (cli-001, ...)."""
    __tablename__ = "clients"

    id = db.Column(db.String(32), primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(64), nullable=False, default="")
    location = db.Column(db.String(255), nullable=False, default="")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "location": self.location,
            "created_at": to_utc_z(self.created_at),
        }


class Department(db.Model):
    """
    Receiving side of distribution movements.

    Departments are soft-deleted (is_active=False) so past movements keep a
    meaningful department name.
    """
    __tablename__ = "departments"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_departments_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), nullable=False)
    description = db.Column(db.String(200), nullable=True)
    icon = db.Column(db.String(64), nullable=False)
    color = db.Column(db.String(7), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
            "color": self.color,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
