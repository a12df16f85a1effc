"""Authentication blueprint: session login/logout, profile, and password change."""
from datetime import datetime, timedelta

from flask import Blueprint, current_app, jsonify, request, session
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf import FlaskForm
from flask_wtf.csrf import generate_csrf
from sqlalchemy.exc import SQLAlchemyError
from wtforms import BooleanField, PasswordField, StringField
from wtforms.validators import DataRequired, Length

from extensions import db
from models import AuditLog, User
from utils.operative_workflow import can_choose_region
from utils.security import attempts_exceeded, reset_attempts, track_attempt
from utils.user_directory import UserDirectoryError, change_password
from utils.visibility import CATALOG_ADMIN_ROLES, EXPORT_ROLES, scope_for

auth_bp = Blueprint("auth", __name__)


class LoginForm(FlaskForm):
    username = StringField("Username", validators=[DataRequired(), Length(max=80)])
    password = PasswordField("Password", validators=[DataRequired()])
    remember_me = BooleanField("Remember me")


class PasswordChangeForm(FlaskForm):
    current_password = PasswordField("Current password", validators=[DataRequired()])
    new_password = PasswordField("New password", validators=[DataRequired(), Length(min=6, max=128)])


def session_payload(user: User) -> dict:
    payload = user.to_dict()
    payload["capabilities"] = {
        "visibility": scope_for(user).value,
        "can_export": user.role_enum in EXPORT_ROLES,
        "can_manage_catalogs": user.role_enum in CATALOG_ADMIN_ROLES,
        "can_manage_users": user.is_admin,
        "can_delete_operatives": user.is_admin,
        "can_choose_region": can_choose_region(user),
    }
    return payload


def _attempt_key(username: str) -> str:
    return f"{request.remote_addr}:{username.lower()}"


@auth_bp.route("/csrf-token", methods=["GET"])
def csrf_token():
    return jsonify({"csrf_token": generate_csrf()})


@auth_bp.route("/login", methods=["POST"])
def login():
    if current_user.is_authenticated:
        return jsonify({"user": session_payload(current_user)})

    form = LoginForm()
    if not form.validate_on_submit():
        return jsonify({"error": "Username and password are required", "fields": form.errors}), 400

    username = form.username.data.strip()
    limit = int(current_app.config.get("LOGIN_ATTEMPT_LIMIT", 10))
    window = timedelta(minutes=int(current_app.config.get("LOGIN_LOCKOUT_MINUTES", 15)))
    key = _attempt_key(username)
    if attempts_exceeded(key, limit, window):
        current_app.logger.warning("Login throttled", extra={"username": username, "ip": request.remote_addr})
        return jsonify({"error": "Too many failed attempts. Try again later."}), 429

    user = User.query.filter_by(username=username).first()
    if not user or not user.check_password(form.password.data):
        track_attempt(key, limit, window)
        log_action("LOGIN_FAILED", user, context=username)
        db.session.commit()
        return jsonify({"error": "Invalid credentials provided."}), 401

    if not user.is_active:
        return jsonify({"error": "Your account is inactive. Please contact an administrator."}), 403

    reset_attempts(key)
    login_user(user, remember=bool(form.remember_me.data))
    session.permanent = True
    user.last_login_at = datetime.utcnow()
    db.session.add(user)
    log_action("LOGIN", user)
    db.session.commit()
    current_app.logger.info("user_logged_in", extra={"user_id": user.id, "role": user.role})
    return jsonify({"user": session_payload(user)})


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    user = current_user._get_current_object()
    logout_user()
    session.clear()
    log_action("LOGOUT", user)
    db.session.commit()
    return jsonify({"status": "logged_out"})


@auth_bp.route("/me", methods=["GET"])
@login_required
def me():
    return jsonify({"user": session_payload(current_user)})


@auth_bp.route("/password", methods=["POST"])
@login_required
def update_password():
    form = PasswordChangeForm()
    if not form.validate_on_submit():
        return jsonify({"error": "Invalid password data", "fields": form.errors}), 400
    try:
        change_password(current_user, form.current_password.data, form.new_password.data)
        log_action("PASSWORD_CHANGED", current_user)
        db.session.commit()
    except UserDirectoryError as exc:
        current_app.logger.warning("Password change rejected", extra={"user_id": current_user.id, "error": str(exc)})
        return jsonify({"error": str(exc)}), 400
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Database error while changing password")
        return jsonify({"error": "Password could not be saved"}), 500
    return jsonify({"status": "updated"})


def log_action(action: str, user: User | None, context: str | None = None):
    entry = AuditLog(
        user_id=user.id if user else None,
        action_type=action,
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent", "unknown")[:255],
        context_entity=context[:120] if context else None,
    )
    db.session.add(entry)
