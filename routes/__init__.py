"""Blueprint registration and the dashboard/statistics endpoints."""
from datetime import datetime

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required

from utils.statistics import compute_statistics
from utils.visibility import filter_current_shift, filter_date_range, filter_search, shift_window, visible_operatives
from .admin import admin_bp
from .auth import auth_bp
from .operatives import operatives_bp

main_bp = Blueprint("main", __name__)


@main_bp.route("/health", methods=["GET"])
def health():
    return jsonify({"status": "ok"})


@main_bp.route("/api/dashboard", methods=["GET"])
@login_required
def dashboard():
    """Operatives of the current operational day, or the full visible history with ``all=1``."""
    query = visible_operatives(current_user)
    show_all = request.args.get("all", "").lower() in ("1", "true", "yes")
    if not show_all:
        query = filter_current_shift(query)
    query = filter_search(query, request.args.get("q"))
    operatives = query.all()

    start, end = shift_window()
    active = sum(1 for operative in operatives if operative.status == "ACTIVE")
    current_app.logger.info(
        "dashboard_data_compiled",
        extra={"user_id": current_user.id, "items": len(operatives), "show_all": show_all},
    )
    return jsonify(
        {
            "window": None if show_all else {"start": start.isoformat(), "end": end.isoformat()},
            "counts": {"active": active, "concluded": len(operatives) - active, "total": len(operatives)},
            "items": [operative.to_dict() for operative in operatives],
        }
    )


@main_bp.route("/api/statistics", methods=["GET"])
@login_required
def statistics():
    query = visible_operatives(current_user)
    start_arg, end_arg = request.args.get("start"), request.args.get("end")
    if start_arg or end_arg:
        try:
            start = datetime.strptime(start_arg or end_arg, "%Y-%m-%d").date()
            end = datetime.strptime(end_arg or start_arg, "%Y-%m-%d").date()
            query = filter_date_range(query, start, end)
        except ValueError as exc:
            return jsonify({"error": str(exc)}), 400
    return jsonify(compute_statistics(query.all()))


__all__ = ["main_bp", "auth_bp", "operatives_bp", "admin_bp"]
