from models.db import db
from utils import clock


class AuditLog(db.Model):
    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, nullable=True, index=True)  # nullable for unresolved identities
    action = db.Column(db.String(100), nullable=False)  # e.g. Account Locked, Password Changed
    detail = db.Column(db.String(500), nullable=True)

    ip = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)

    timestamp = db.Column(db.DateTime, default=clock.utcnow, nullable=False)
