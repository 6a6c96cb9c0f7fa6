# backend/routes/verification.py
from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from auth_guard import get_auth, require_role
from utils.mail import mask

__all__ = ["verification_bp"]
verification_bp = Blueprint("verification", __name__, url_prefix="/verification")

_SENT_MESSAGE = {
    "email": "Verification code sent to your email address",
    "phone": "OTP sent successfully to your mobile number",
}
_VERIFIED_MESSAGE = {
    "email": "Email verified successfully",
    "phone": "Phone number verified successfully",
}


def _sent(channel: str, result):
    body = {"success": True, "message": _SENT_MESSAGE[channel], "provider": result.provider}
    if result.mocked:
        # mock mode only; a live provider never echoes the code
        body["debug"] = {"otp": result.code}
    return jsonify(body), 200


# -------------------------------------------------------------------
# Destination-keyed (works before sign-in)
# -------------------------------------------------------------------
@verification_bp.route("/send-email-otp", methods=["POST"])
def send_email_otp():
    data = request.get_json(silent=True) or {}
    result = get_auth().send_otp("email", data.get("email"))
    current_app.logger.info("[verify] email otp sent to=%s via=%s", mask(str(data.get("email") or "")), result.provider)
    return _sent("email", result)


@verification_bp.route("/send-phone-otp", methods=["POST"])
def send_phone_otp():
    data = request.get_json(silent=True) or {}
    result = get_auth().send_otp("phone", data.get("phone"))
    current_app.logger.info("[verify] phone otp sent to=%s via=%s", mask(str(data.get("phone") or "")), result.provider)
    return _sent("phone", result)


@verification_bp.route("/verify-email-otp", methods=["POST"])
def verify_email_otp():
    data = request.get_json(silent=True) or {}
    get_auth().verify_otp("email", data.get("email"), data.get("otp"))
    return jsonify(success=True, message=_VERIFIED_MESSAGE["email"]), 200


@verification_bp.route("/verify-phone-otp", methods=["POST"])
def verify_phone_otp():
    data = request.get_json(silent=True) or {}
    get_auth().verify_otp("phone", data.get("phone"), data.get("otp"))
    return jsonify(success=True, message=_VERIFIED_MESSAGE["phone"]), 200


# -------------------------------------------------------------------
# Signed-in user's own channels
# -------------------------------------------------------------------
@verification_bp.route("/request", methods=["POST"])
@require_role()
def request_verification():
    """Body: { channel: 'email' | 'phone' }"""
    data = request.get_json(silent=True) or {}
    channel = str(data.get("channel") or "").strip().lower()
    result = get_auth().request_channel_verification(g.user.id, channel)
    return _sent(channel, result)


@verification_bp.route("/confirm", methods=["POST"])
@require_role()
def confirm_verification():
    """Body: { channel: 'email' | 'phone', otp: '123456' }"""
    data = request.get_json(silent=True) or {}
    channel = str(data.get("channel") or "").strip().lower()
    user = get_auth().confirm_channel_verification(g.user.id, channel, data.get("otp"))
    return jsonify(success=True, message=_VERIFIED_MESSAGE[channel], user=user.to_dict()), 200
