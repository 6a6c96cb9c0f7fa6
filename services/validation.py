# services/validation.py
from __future__ import annotations

import re
from typing import Any, Dict, Mapping, Optional

from services.errors import ValidationError

EMAIL_RE = re.compile(r"[^@\s]+@[^@\s]+\.[^@\s]+")
PHONE_RE = re.compile(r"[6-9]\d{9}")          # 10-digit Indian mobile
NAME_RE  = re.compile(r"[A-Za-z][A-Za-z ]*")


def normalize_email(raw: Any) -> str:
    return str(raw or "").strip().lower()


def normalize_phone(raw: Any) -> str:
    return re.sub(r"\D", "", str(raw or ""))


def check_email(raw: Any) -> str:
    email = normalize_email(raw)
    if not email:
        raise ValidationError("Email is required", errors={"email": "Email is required"})
    if not EMAIL_RE.fullmatch(email):
        raise ValidationError("Please provide a valid email address",
                              errors={"email": "Please enter a valid email address"})
    return email


def check_phone(raw: Any) -> str:
    phone = normalize_phone(raw)
    if not PHONE_RE.fullmatch(phone):
        raise ValidationError("Please provide a valid 10-digit Indian mobile number",
                              errors={"phone": "Please enter a valid 10-digit Indian mobile number"})
    return phone


def password_problem(password: str, min_length: int) -> Optional[str]:
    if not password:
        return "Password is required"
    if len(password) < min_length:
        return f"Password must be at least {min_length} characters long"
    if not re.search(r"[A-Za-z]", password) or not re.search(r"\d", password):
        return "Password must contain at least one letter and one number"
    return None


def validate_registration(
    profile: Mapping[str, Any],
    password: Any,
    *,
    min_password_length: int,
    phone_required: bool = False,
) -> Dict[str, Any]:
    """
    Validate and normalize a registration payload.

    Collects every field problem before failing, so the client can flag all
    of them at once. Returns ``{"name", "email", "phone"}`` with ``phone``
    set to None when absent.
    """
    errors: Dict[str, str] = {}

    name = str(profile.get("name") or "").strip()
    if not name:
        errors["name"] = "Name is required"
    elif not 2 <= len(name) <= 50:
        errors["name"] = "Name must be between 2 and 50 characters long"
    elif not NAME_RE.fullmatch(name):
        errors["name"] = "Name can only contain letters and spaces"

    email = normalize_email(profile.get("email"))
    if not email:
        errors["email"] = "Email is required"
    elif not EMAIL_RE.fullmatch(email):
        errors["email"] = "Please enter a valid email address"

    phone = normalize_phone(profile.get("phone")) or None
    if phone is None:
        if phone_required:
            errors["phone"] = "Phone number is required"
    elif not PHONE_RE.fullmatch(phone):
        errors["phone"] = "Please enter a valid 10-digit Indian mobile number"

    password = password if isinstance(password, str) else ""
    problem = password_problem(password, min_password_length)
    if problem:
        errors["password"] = problem

    confirm = profile.get("confirmPassword")
    if confirm is not None and confirm != password:
        errors["confirmPassword"] = "Passwords do not match"

    if errors:
        raise ValidationError(errors=errors)

    return {"name": name, "email": email, "phone": phone}
