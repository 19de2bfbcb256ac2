from models.db import db
from utils import clock


class Account(db.Model):
    __tablename__ = "accounts"

    id = db.Column(db.Integer, primary_key=True)

    # always stored trimmed + lower-cased
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)

    # Profile
    first_name = db.Column(db.String(50), nullable=True)
    last_name = db.Column(db.String(50), nullable=True)
    gender = db.Column(db.String(10), nullable=True)
    date_of_birth = db.Column(db.Date, nullable=True)
    who_am_i = db.Column(db.String(1000), nullable=True)

    # Fernet ciphertext; nric_lookup is a keyed digest used for uniqueness
    nric_encrypted = db.Column(db.Text, nullable=True)
    nric_lookup = db.Column(db.String(64), unique=True, nullable=True, index=True)

    failed_login_count = db.Column(db.Integer, default=0, nullable=False)
    lockout_until = db.Column(db.DateTime, nullable=True)

    last_password_change = db.Column(db.DateTime, default=clock.utcnow, nullable=False)
    last_login_at = db.Column(db.DateTime, nullable=True)

    # hash of the one authoritative session token
    current_session_hash = db.Column(db.String(128), nullable=True)
    session_created_at = db.Column(db.DateTime, nullable=True)

    reset_token_hash = db.Column(db.String(128), nullable=True, index=True)
    reset_token_expires_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=clock.utcnow, nullable=False)

    sessions = db.relationship(
        "Session", back_populates="account", cascade="all, delete-orphan", passive_deletes=True
    )
    password_history = db.relationship(
        "PasswordHistory", back_populates="account", cascade="all, delete-orphan", passive_deletes=True
    )

    def is_locked(self, now=None) -> bool:
        now = now or clock.utcnow()
        return self.lockout_until is not None and self.lockout_until > now
