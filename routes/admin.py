"""Administration blueprint: catalog maintenance and user accounts."""
from flask import Blueprint, Response, current_app, jsonify, request
from flask_login import current_user
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models import Role, User
from utils.catalogs import CatalogError, get_catalog_store
from utils.decorators import roles_required
from utils.user_directory import (
    UserDirectoryError,
    UserNotFound,
    create_user,
    delete_user,
    export_users_csv,
    import_users_csv,
    update_user,
)
from .auth import log_action

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")

MAX_IMPORT_BYTES = 2 * 1024 * 1024


def _json_body() -> dict:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _catalog_response(key: str, values: list, status: int = 200):
    return jsonify({"key": key, "values": values}), status


def _catalog_failure(exc: Exception, key: str):
    db.session.rollback()
    if isinstance(exc, CatalogError):
        current_app.logger.warning("Catalog change rejected", extra={"catalog": key, "error": str(exc)})
        return jsonify({"error": str(exc)}), 400
    current_app.logger.exception("Database error while updating catalog", extra={"catalog": key})
    return jsonify({"error": "Catalog could not be saved"}), 500


# -------- catalogs --------


@admin_bp.route("/catalogs", methods=["GET"])
@roles_required(Role.ADMIN, Role.ANALYST)
def list_catalogs():
    store = get_catalog_store()
    return jsonify({key: store.list(key) for key in store.keys()})


@admin_bp.route("/catalogs/<string:key>", methods=["GET"])
@roles_required(Role.ADMIN, Role.ANALYST)
def view_catalog(key):
    try:
        return _catalog_response(key, get_catalog_store().list(key))
    except CatalogError as exc:
        return jsonify({"error": str(exc)}), 404


@admin_bp.route("/catalogs/<string:key>", methods=["POST"])
@roles_required(Role.ADMIN, Role.ANALYST)
def append_catalog_value(key):
    payload = _json_body()
    value = payload.get("value", payload)
    try:
        values = get_catalog_store().append(key, value, actor_id=current_user.id)
        log_action("CATALOG_APPEND", current_user, context=key)
        db.session.commit()
    except (CatalogError, SQLAlchemyError) as exc:
        return _catalog_failure(exc, key)
    return _catalog_response(key, values, 201)


@admin_bp.route("/catalogs/<string:key>", methods=["DELETE"])
@roles_required(Role.ADMIN, Role.ANALYST)
def remove_catalog_value(key):
    payload = _json_body()
    value = payload.get("value", payload)
    try:
        values = get_catalog_store().remove(key, value, actor_id=current_user.id)
        log_action("CATALOG_REMOVE", current_user, context=key)
        db.session.commit()
    except (CatalogError, SQLAlchemyError) as exc:
        return _catalog_failure(exc, key)
    return _catalog_response(key, values)


@admin_bp.route("/catalogs/<string:key>/reorder", methods=["POST"])
@roles_required(Role.ADMIN, Role.ANALYST)
def reorder_catalog(key):
    payload = _json_body()
    try:
        index = int(payload.get("index"))
    except (TypeError, ValueError):
        return jsonify({"error": "An integer index is required"}), 400
    try:
        values = get_catalog_store().reorder(key, index, str(payload.get("direction", "")).lower(), actor_id=current_user.id)
        log_action("CATALOG_REORDER", current_user, context=key)
        db.session.commit()
    except (CatalogError, SQLAlchemyError) as exc:
        return _catalog_failure(exc, key)
    return _catalog_response(key, values)


@admin_bp.route("/catalogs/<string:key>/sort", methods=["POST"])
@roles_required(Role.ADMIN, Role.ANALYST)
def sort_catalog(key):
    try:
        values = get_catalog_store().sort_alphabetically(key, actor_id=current_user.id)
        log_action("CATALOG_SORT", current_user, context=key)
        db.session.commit()
    except (CatalogError, SQLAlchemyError) as exc:
        return _catalog_failure(exc, key)
    return _catalog_response(key, values)


# -------- users --------


@admin_bp.route("/users", methods=["GET"])
@roles_required(Role.ADMIN)
def list_users():
    users = User.query.order_by(User.full_name.asc()).all()
    return jsonify([user.to_dict() for user in users])


@admin_bp.route("/users", methods=["POST"])
@roles_required(Role.ADMIN)
def add_user():
    try:
        user = create_user(_json_body())
        log_action("USER_CREATED", current_user, context=user.id)
        db.session.commit()
    except UserDirectoryError as exc:
        db.session.rollback()
        current_app.logger.warning("User creation rejected", extra={"error": str(exc)})
        return jsonify({"error": str(exc)}), 400
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Database error while creating user")
        return jsonify({"error": "User could not be saved"}), 500
    return jsonify(user.to_dict()), 201


@admin_bp.route("/users/<string:user_id>", methods=["PATCH"])
@roles_required(Role.ADMIN)
def edit_user(user_id):
    try:
        user = update_user(user_id, _json_body())
        log_action("USER_UPDATED", current_user, context=user.id)
        db.session.commit()
    except UserDirectoryError as exc:
        db.session.rollback()
        current_app.logger.warning("User update rejected", extra={"user_id": user_id, "error": str(exc)})
        return jsonify({"error": str(exc)}), 404 if isinstance(exc, UserNotFound) else 400
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Database error while updating user")
        return jsonify({"error": "User could not be saved"}), 500
    return jsonify(user.to_dict())


@admin_bp.route("/users/<string:user_id>", methods=["DELETE"])
@roles_required(Role.ADMIN)
def remove_user(user_id):
    try:
        delete_user(user_id, current_user)
        log_action("USER_DELETED", current_user, context=user_id)
        db.session.commit()
    except UserDirectoryError as exc:
        db.session.rollback()
        current_app.logger.warning("User deletion rejected", extra={"user_id": user_id, "error": str(exc)})
        return jsonify({"error": str(exc)}), 404 if isinstance(exc, UserNotFound) else 400
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Database error while deleting user")
        return jsonify({"error": "User could not be deleted"}), 500
    return jsonify({"deleted": user_id})


@admin_bp.route("/users/import", methods=["POST"])
@roles_required(Role.ADMIN)
def import_users():
    upload = request.files.get("file")
    raw = upload.read(MAX_IMPORT_BYTES + 1) if upload else request.get_data(cache=False)
    if not raw:
        return jsonify({"error": "Upload a CSV file"}), 400
    if len(raw) > MAX_IMPORT_BYTES:
        return jsonify({"error": "File is too large"}), 400
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        return jsonify({"error": "File must be UTF-8 encoded"}), 400

    try:
        summary = import_users_csv(text)
        if summary.has_changes:
            log_action("USERS_IMPORTED", current_user, context=f"+{summary.inserted}/~{summary.updated}")
        db.session.commit()
    except UserDirectoryError as exc:
        db.session.rollback()
        current_app.logger.warning("User import rejected", extra={"error": str(exc)})
        return jsonify({"error": str(exc)}), 400
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Database error while importing users")
        return jsonify({"error": "Import could not be saved"}), 500
    return jsonify(summary.to_dict())


@admin_bp.route("/users/export", methods=["GET"])
@roles_required(Role.ADMIN)
def export_users():
    users = User.query.order_by(User.full_name.asc()).all()
    return Response(
        export_users_csv(users).encode("utf-8"),
        mimetype="text/csv",
        headers={"Content-Disposition": 'attachment; filename="users.csv"'},
    )
