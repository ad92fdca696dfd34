# Overview: Flask API routes for system health; returns JSON responses.

from flask import Blueprint, jsonify

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


system_bp = Blueprint("system", __name__, url_prefix="/api")


@system_bp.get("/health")
def health():
    db.session.execute(db.text("SELECT 1"))
    return jsonify({"status": "ok", "server_time": to_utc_z(utcnow())}), 200
