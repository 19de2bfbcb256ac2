from models.db import db
from utils import clock


class Session(db.Model):
    __tablename__ = "sessions"
    __table_args__ = (db.Index("ix_sessions_account_active", "account_id", "active"),)

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(
        db.Integer, db.ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # store only hashed token in DB (never store raw token)
    token_hash = db.Column(db.String(128), unique=True, nullable=False, index=True)

    created_at = db.Column(db.DateTime, default=clock.utcnow, nullable=False)
    last_activity_at = db.Column(db.DateTime, default=clock.utcnow, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)

    active = db.Column(db.Boolean, default=True, nullable=False)

    ip = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)

    account = db.relationship("Account", back_populates="sessions")
