# models/user.py
from __future__ import annotations
from db import db, ID_TYPE
from sqlalchemy.sql import func
from werkzeug.security import generate_password_hash, check_password_hash

ROLES = ("citizen", "worker", "admin")


class User(db.Model):
    __tablename__ = "users"

    id               = db.Column(ID_TYPE, primary_key=True, autoincrement=True)
    # Always stored lowercased, so the unique index is case-insensitive in effect
    email            = db.Column(db.String(254), nullable=False, unique=True, index=True)
    name             = db.Column(db.String(80), nullable=False)
    phone            = db.Column(db.String(32), nullable=True, unique=True)
    role             = db.Column(db.String(32), nullable=False, default="citizen", index=True)
    password_hash    = db.Column(db.String(255), nullable=False)

    email_verified   = db.Column(db.Boolean, nullable=False, default=False)
    phone_verified   = db.Column(db.Boolean, nullable=False, default=False)
    is_active        = db.Column(db.Boolean, nullable=False, default=True)
    last_login_at    = db.Column(db.DateTime, nullable=True)

    # Password reset: sha256 of the emailed token, cleared once used
    reset_token_hash = db.Column(db.String(64), nullable=True, unique=True)
    reset_expires_at = db.Column(db.DateTime, nullable=True)

    created_at       = db.Column(db.DateTime, server_default=func.now(), nullable=False)
    updated_at       = db.Column(db.DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    # ── Helpers ─────────────────────────────────────────────────────────────
    def set_password(self, raw: str) -> None:
        self.password_hash = generate_password_hash(raw)

    def check_password(self, raw: str) -> bool:
        try:
            return check_password_hash(self.password_hash or "", raw or "")
        except ValueError:
            # unknown hash method on a legacy row
            return False

    def is_verified(self, channel: str) -> bool:
        return bool(self.email_verified if channel == "email" else self.phone_verified)

    def to_dict(self) -> dict:
        """Public profile; never includes the password hash."""
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "role": self.role,
            "emailVerified": bool(self.email_verified),
            "phoneVerified": bool(self.phone_verified),
            "isActive": bool(self.is_active),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "lastLoginAt": self.last_login_at.isoformat() if self.last_login_at else None,
        }
