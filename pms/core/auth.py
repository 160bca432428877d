from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user
from werkzeug.security import check_password_hash

from pms.core.logging import get_logger
from pms.core.models import User

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")
logger = get_logger(__name__)


def _user_payload(user: User) -> dict[str, object]:
    return {"id": user.id, "email": user.email, "full_name": user.full_name, "role": user.role.value}


@auth_bp.post("/login")
def login():
    data = request.get_json(silent=True) or request.form
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    user = User.query.filter_by(email=email).first()
    if not user or not user.is_active or not check_password_hash(user.password_hash, password):
        logger.info("login_failed", extra={"email": email})
        return jsonify({"error": "invalid_credentials", "message": "Invalid credentials"}), 401
    login_user(user)
    return jsonify(_user_payload(user))


@auth_bp.post("/logout")
@login_required
def logout():
    logout_user()
    return jsonify({"status": "logged_out"})


@auth_bp.get("/me")
@login_required
def me():
    return jsonify(_user_payload(current_user))
