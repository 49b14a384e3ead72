from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


ROLES = ("owner", "admin", "karyawan", "kasir", "pelanggan")


class User(db.Model):
    """
    Staff and customer accounts, kept only for attribution and payroll.

    Login, passwords and permissions live outside this subsystem.
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    username = db.Column(db.String(64), nullable=False, unique=True)
    email = db.Column(db.String(255), nullable=True)

    role = db.Column(db.String(16), nullable=False, default="kasir", index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "username": self.username,
            "email": self.email,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
