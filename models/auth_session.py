# models/auth_session.py
from db import db, ID_TYPE


class AuthSession(db.Model):
    __tablename__ = "auth_sessions"

    token_hash = db.Column(db.String(64), primary_key=True)      # sha256 of the bearer token
    user_id    = db.Column(ID_TYPE, db.ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    issued_at  = db.Column(db.DateTime, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=True)            # NULL → no expiry
    revoked_at = db.Column(db.DateTime, nullable=True)

    user = db.relationship("User", backref=db.backref("sessions", cascade="all, delete-orphan"))
