import hmac
import math
from datetime import timedelta

from flask import current_app

from models import atomic, db
from models.account import Account
from models.session import Session
from security.tokens import hash_token, new_token
from utils import clock


def _idle_timeout() -> timedelta:
    return timedelta(seconds=current_app.config.get("IDLE_TIMEOUT_SECONDS", 1200))


def create_session(account_id: int, client_ip=None, user_agent=None) -> str:
    """
    Creates the one active session for the account and returns the RAW token.
    Only the hash is stored. Earlier sessions of the account are deactivated in
    the same transaction, and the account pointer moves to the new token, so of
    two racing logins the last writer wins.
    """
    raw_token = new_token()
    token_hash = hash_token(raw_token)
    now = clock.utcnow()

    with atomic():
        account = Account.query.filter_by(id=account_id).with_for_update().one()

        superseded = (
            Session.query
            .filter_by(account_id=account.id, active=True)
            .update({Session.active: False}, synchronize_session=False)
        )

        db.session.add(Session(
            account_id=account.id,
            token_hash=token_hash,
            created_at=now,
            last_activity_at=now,
            expires_at=now + _idle_timeout(),
            active=True,
            ip=client_ip,
            user_agent=(user_agent or "")[:255] or None,
        ))

        account.current_session_hash = token_hash
        account.session_created_at = now

    if superseded:
        current_app.logger.info("Account %s: %s earlier session(s) superseded", account_id, superseded)
    return raw_token


def _find_session(account_id: int, raw_token: str):
    return (
        Session.query
        .filter_by(account_id=account_id, token_hash=hash_token(raw_token), active=True)
        .first()
    )


def validate_session(account_id, raw_token) -> bool:
    """
    True only when the token is the account's current pointer AND backs an
    active, unexpired row. A successful check slides the expiry forward.
    """
    if not account_id or not raw_token:
        return False

    with atomic():
        account = db.session.get(Account, account_id)
        if account is None or not account.current_session_hash:
            return False

        # Pointer mismatch means the account logged in somewhere else
        if not hmac.compare_digest(account.current_session_hash, hash_token(raw_token)):
            return False

        sess = _find_session(account_id, raw_token)
        if sess is None:
            return False

        now = clock.utcnow()
        if sess.expires_at <= now:
            sess.active = False
            return False

        sess.last_activity_at = now
        sess.expires_at = now + _idle_timeout()
        return True


def session_time_remaining(account_id, raw_token) -> int:
    """Whole minutes left on the session, 0 when it is not active."""
    sess = _find_session(account_id, raw_token) if raw_token else None
    if sess is None:
        return 0
    seconds = (sess.expires_at - clock.utcnow()).total_seconds()
    return max(0, math.ceil(seconds / 60))


def invalidate_session(account_id: int, raw_token: str) -> bool:
    if not raw_token:
        return False
    token_hash = hash_token(raw_token)

    with atomic():
        sess = Session.query.filter_by(account_id=account_id, token_hash=token_hash).first()
        if sess is not None:
            sess.active = False

        account = Account.query.filter_by(id=account_id).with_for_update().first()
        if account is not None and account.current_session_hash == token_hash:
            account.current_session_hash = None
            account.session_created_at = None

    return sess is not None


def invalidate_other_sessions(account_id: int, keep_token=None) -> int:
    query = Session.query.filter_by(account_id=account_id, active=True)
    if keep_token:
        query = query.filter(Session.token_hash != hash_token(keep_token))

    with atomic():
        return query.update({Session.active: False}, synchronize_session=False)


def cleanup_expired_sessions() -> int:
    """Hygiene sweep; validation already expires sessions lazily."""
    with atomic():
        return (
            Session.query
            .filter(Session.active.is_(True), Session.expires_at <= clock.utcnow())
            .update({Session.active: False}, synchronize_session=False)
        )


def get_active_sessions(account_id: int):
    return (
        Session.query
        .filter_by(account_id=account_id, active=True)
        .order_by(Session.last_activity_at.desc())
        .all()
    )


def has_concurrent_logins(account_id: int) -> bool:
    count = (
        Session.query
        .filter(
            Session.account_id == account_id,
            Session.active.is_(True),
            Session.expires_at > clock.utcnow(),
        )
        .count()
    )
    return count > 1
