# backend/routes/auth.py
from __future__ import annotations

import time

from flask import Blueprint, current_app, g, jsonify, request

from auth_guard import bearer_token, get_auth, require_role

__all__ = ["auth_bp"]
auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


# -------------------------------------------------------------------
# Middleware
# -------------------------------------------------------------------
@auth_bp.after_request
def add_no_store(resp):
    resp.headers["Cache-Control"] = "no-store"
    return resp


# -------------------------------------------------------------------
# Health
# -------------------------------------------------------------------
@auth_bp.route("/ping", methods=["GET"])
def ping():
    return jsonify(ok=True, ts=time.time()), 200


# -------------------------------------------------------------------
# Register
# -------------------------------------------------------------------
@auth_bp.route("/register", methods=["POST"])
def register():
    """
    Create a citizen account and sign it in.

    Body: { name, email, password, confirmPassword?, phone? }
    Codes for the required channels are sent right away; the account stays
    unverified until the client confirms them.
    """
    data = request.get_json(silent=True) or {}
    result = get_auth().register(data, data.get("password"))

    pending = result.verification_dict()
    message = "Registration successful! Welcome to Civic Connect."
    if pending:
        message += " Verification code sent."
    current_app.logger.info("[auth] /register uid=%s pending=%s", result.user.id, list(pending))

    return jsonify(
        success=True,
        message=message,
        token=result.token,
        user=result.user.to_dict(),
        verification=pending,
    ), 201


# -------------------------------------------------------------------
# Login / logout
# -------------------------------------------------------------------
@auth_bp.route("/login", methods=["POST"])
def login():
    data = request.get_json(silent=True) or {}
    token, user = get_auth().login(data.get("email"), data.get("password"))
    return jsonify(
        success=True,
        message="Login successful",
        token=token,
        user=user.to_dict(),
    ), 200


@auth_bp.route("/logout", methods=["POST"])
def logout():
    # Succeeds for missing, unknown and already-revoked tokens alike
    get_auth().logout(bearer_token())
    return jsonify(success=True, message="Logged out successfully"), 200


# -------------------------------------------------------------------
# Password reset
# -------------------------------------------------------------------
@auth_bp.route("/forgot-password", methods=["POST"])
def forgot_password():
    """Body: { email }. Same answer whether or not the account exists."""
    data = request.get_json(silent=True) or {}
    get_auth().request_password_reset(data.get("email"))
    return jsonify(
        success=True,
        message="If an account exists for this email, a password reset token has been sent.",
    ), 200


@auth_bp.route("/reset-password", methods=["POST"])
def reset_password():
    """Body: { token, newPassword }. Signs out every session and returns a new one."""
    data = request.get_json(silent=True) or {}
    token, user = get_auth().reset_password(data.get("token"), data.get("newPassword"))
    return jsonify(
        success=True,
        message="Password reset successful",
        token=token,
        user=user.to_dict(),
    ), 200


# -------------------------------------------------------------------
# Me (token-based)
# -------------------------------------------------------------------
@auth_bp.route("/me", methods=["GET"])
@require_role()
def me():
    return jsonify(success=True, user=g.user.to_dict()), 200


@auth_bp.route("/change-password", methods=["PUT"])
@require_role()
def change_password():
    """Body: { currentPassword, newPassword }. Signs out every other session."""
    data = request.get_json(silent=True) or {}
    get_auth().change_password(
        g.user.id,
        data.get("currentPassword"),
        data.get("newPassword"),
        keep_token=g.token,
    )
    return jsonify(success=True, message="Password changed successfully"), 200
