"""Operative registration, history, conclusion, deletion, and CSV export."""
from datetime import datetime

from flask import Blueprint, Response, abort, current_app, jsonify, request
from flask_login import current_user, login_required
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models import Operative, Role
from utils.decorators import roles_required
from utils.operative_workflow import (
    OperativeNotFound,
    OperativeValidationError,
    conclude_operative,
    create_operative,
    delete_operative,
)
from utils.report_export import ExportError, build_operatives_csv, export_filename, resolve_columns
from utils.visibility import (
    can_view,
    export_cutoff_hour,
    filter_date_range,
    filter_search,
    filter_status,
    visible_operatives,
)
from .auth import log_action

operatives_bp = Blueprint("operatives", __name__, url_prefix="/operatives")


def _visible_or_404(operative_id: str) -> Operative:
    operative = db.session.get(Operative, operative_id)
    # Records outside the user's scope are reported as missing.
    if operative is None or not can_view(operative, current_user):
        abort(404)
    return operative


def _parse_date(value: str | None, label: str):
    if not value:
        raise ValueError(f"{label} date is required")
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as exc:
        raise ValueError(f"{label} date must use YYYY-MM-DD") from exc


@operatives_bp.route("/", methods=["GET"])
@login_required
def list_operatives():
    query = visible_operatives(current_user)
    query = filter_search(query, request.args.get("q"))
    query = filter_status(query, request.args.get("status"))
    page = request.args.get("page", 1, type=int)
    per_page = min(request.args.get("per_page", current_app.config.get("OPERATIVES_PER_PAGE", 50), type=int), 200)
    pagination = query.paginate(page=page, per_page=per_page, error_out=False)
    return jsonify(
        {
            "items": [operative.to_dict() for operative in pagination.items],
            "page": pagination.page,
            "pages": pagination.pages,
            "total": pagination.total,
        }
    )


@operatives_bp.route("/", methods=["POST"])
@login_required
def register_operative():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({"error": "A JSON body is required"}), 400
    try:
        operative = create_operative(payload, current_user)
        log_action("OPERATIVE_CREATED", current_user, context=operative.id)
        db.session.commit()
    except OperativeValidationError as exc:
        db.session.rollback()
        current_app.logger.warning("Operative rejected", extra={"user_id": current_user.id, "error": str(exc)})
        return jsonify({"error": str(exc)}), 400
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Database error while registering operative")
        return jsonify({"error": "Operative could not be saved"}), 500
    return jsonify(operative.to_dict()), 201


@operatives_bp.route("/<string:operative_id>", methods=["GET"])
@login_required
def view_operative(operative_id):
    return jsonify(_visible_or_404(operative_id).to_dict())


@operatives_bp.route("/<string:operative_id>/conclude", methods=["POST"])
@login_required
def conclude(operative_id):
    _visible_or_404(operative_id)
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({"error": "A JSON body is required"}), 400
    try:
        operative = conclude_operative(operative_id, payload, current_user)
        log_action("OPERATIVE_CONCLUDED", current_user, context=operative.id)
        db.session.commit()
    except OperativeNotFound as exc:
        return jsonify({"error": str(exc)}), 404
    except OperativeValidationError as exc:
        db.session.rollback()
        current_app.logger.warning("Conclusion rejected", extra={"operative_id": operative_id, "error": str(exc)})
        return jsonify({"error": str(exc)}), 400
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Database error while concluding operative")
        return jsonify({"error": "Conclusion could not be saved"}), 500
    return jsonify(operative.to_dict())


@operatives_bp.route("/<string:operative_id>", methods=["DELETE"])
@roles_required(Role.ADMIN)
def remove_operative(operative_id):
    try:
        delete_operative(operative_id, current_user)
        log_action("OPERATIVE_DELETED", current_user, context=operative_id)
        db.session.commit()
    except OperativeNotFound as exc:
        return jsonify({"error": str(exc)}), 404
    except OperativeValidationError as exc:
        return jsonify({"error": str(exc)}), 400
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Database error while deleting operative")
        return jsonify({"error": "Operative could not be deleted"}), 500
    return jsonify({"deleted": operative_id})


@operatives_bp.route("/export", methods=["GET"])
@roles_required(Role.ADMIN, Role.DIRECTOR, Role.ANALYST)
def export_operatives():
    flavor = (request.args.get("flavor") or "complete").lower()
    column_names = [name for name in (request.args.get("columns") or "").split(",") if name.strip()]
    try:
        start = _parse_date(request.args.get("start"), "Start")
        end = _parse_date(request.args.get("end"), "End")
        columns = resolve_columns(flavor, column_names)
        query = filter_date_range(visible_operatives(current_user), start, end, export_cutoff_hour(flavor))
    except (ValueError, ExportError) as exc:
        return jsonify({"error": str(exc)}), 400

    operatives = query.order_by(None).order_by(Operative.started_at.asc(), Operative.id.asc()).all()
    if not operatives:
        return jsonify({"error": f"No operatives found between {start.isoformat()} and {end.isoformat()}"}), 404

    body = build_operatives_csv(operatives, columns)
    filename = export_filename(flavor, start.isoformat(), end.isoformat())
    log_action("OPERATIVES_EXPORTED", current_user, context=filename)
    db.session.commit()
    current_app.logger.info(
        "operatives_exported",
        extra={"user_id": current_user.id, "rows": len(operatives), "flavor": flavor, "columns": len(columns)},
    )
    return Response(
        body.encode("utf-8"),
        mimetype="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
