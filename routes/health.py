from flask import Blueprint, jsonify
from sqlalchemy import text

from models import db
from utils.errors import StorageUnavailable

health_bp = Blueprint("health", __name__)


@health_bp.get("/health")
def health():
    try:
        db.session.execute(text("SELECT 1"))
    except Exception as exc:
        db.session.rollback()
        raise StorageUnavailable() from exc
    return jsonify(status="ok"), 200
