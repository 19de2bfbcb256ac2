import math
from datetime import timedelta
from enum import Enum
from typing import NamedTuple, Optional

from flask import current_app
from sqlalchemy import or_

from models import atomic
from models.account import Account
from security.password import burn_verification, verify_password
from utils import clock
from utils.audit import log_event
from utils.validation import normalize_email


class GateOutcome(str, Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    LOCKED = "locked"


class GateResult(NamedTuple):
    outcome: GateOutcome
    account_id: Optional[int] = None
    remaining_minutes: int = 0


def lockout_remaining_minutes(account: Account, now=None) -> int:
    now = now or clock.utcnow()
    if not account.lockout_until or account.lockout_until <= now:
        return 0
    return max(1, math.ceil((account.lockout_until - now).total_seconds() / 60))


def register_failure(account_id: int, ip=None) -> bool:
    """
    Counts one failed password for the account. Returns True when this failure
    triggered a lockout. The increment is a single conditional UPDATE done by
    the database, so concurrent failures queue on the row (on SQLite, on the
    database write lock) and none is lost. The lockout decision is taken on
    the value re-read inside that same write transaction.
    """
    max_attempts = current_app.config.get("MAX_LOGIN_ATTEMPTS", 3)
    lock_minutes = current_app.config.get("LOCKOUT_MINUTES", 15)
    now = clock.utcnow()

    with atomic():
        counted = (
            Account.query
            .filter(
                Account.id == account_id,
                or_(Account.lockout_until.is_(None), Account.lockout_until <= now),
            )
            .update(
                {Account.failed_login_count: Account.failed_login_count + 1},
                synchronize_session=False,
            )
        )
        if not counted:
            # a concurrent request already locked it
            return False

        account = Account.query.filter_by(id=account_id).populate_existing().one()

        if account.failed_login_count >= max_attempts:
            account.lockout_until = now + timedelta(minutes=lock_minutes)
            account.failed_login_count = 0
            log_event("Account Locked", account.id, "Too many failed login attempts", ip=ip, commit=False)
            current_app.logger.warning("Account %s locked for %s minutes (password stage)", account.id, lock_minutes)
            return True

        log_event(
            "Failed Login",
            account.id,
            f"Wrong password (attempt {account.failed_login_count} of {max_attempts})",
            ip=ip,
            commit=False,
        )
        return False


def verify_credentials(email: str, password: str, client_ip=None) -> GateResult:
    email = normalize_email(email)

    with atomic():
        account = Account.query.filter_by(email=email).first()

    if account is None:
        # Same cost and same answer as a wrong password
        burn_verification(password)
        with atomic():
            log_event("Failed Login - Unknown Email", None, email, ip=client_ip, commit=False)
        return GateResult(GateOutcome.REJECTED)

    remaining = lockout_remaining_minutes(account)
    if remaining:
        with atomic():
            log_event("Login Blocked - Locked", account.id, f"{remaining} minutes remaining", ip=client_ip, commit=False)
        return GateResult(GateOutcome.LOCKED, account.id, remaining)

    if not verify_password(password, account.password_hash):
        register_failure(account.id, ip=client_ip)
        return GateResult(GateOutcome.REJECTED)

    # Counter is only cleared once the second factor succeeds
    return GateResult(GateOutcome.ACCEPTED, account.id)
