# models/otp_challenge.py
from __future__ import annotations
from db import db, ID_TYPE
from sqlalchemy.sql import func

CHANNELS = ("email", "phone")


class OtpChallenge(db.Model):
    __tablename__ = "otp_challenges"
    # One row per key; re-issuing overwrites it
    __table_args__ = (
        db.UniqueConstraint("channel", "destination", name="uq_otp_channel_destination"),
    )

    id          = db.Column(ID_TYPE, primary_key=True, autoincrement=True)
    channel     = db.Column(db.String(10), nullable=False)         # 'email' | 'phone'
    destination = db.Column(db.String(254), nullable=False)
    code_hash   = db.Column(db.String(64), nullable=False)         # sha256 hex string
    expires_at  = db.Column(db.DateTime, nullable=False)
    attempts    = db.Column(db.Integer, nullable=False, default=0)
    consumed    = db.Column(db.Boolean, nullable=False, default=False)
    created_at  = db.Column(db.DateTime, nullable=False, server_default=func.now())
