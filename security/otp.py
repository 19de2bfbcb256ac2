import secrets
from datetime import timedelta
from enum import Enum
from typing import NamedTuple, Optional

from flask import current_app
from sqlalchemy import case

from models import atomic, db
from models.account import Account
from security.challenge_store import PendingChallenge, get_challenge_store
from security.session import create_session
from security.tokens import hash_token, new_token, token_matches
from utils import clock
from utils.audit import log_event
from utils.emailer import deliver_2fa_code


class ChallengeOutcome(str, Enum):
    SUCCESS = "success"
    EXPIRED = "expired"
    INVALID = "invalid"
    LOCKED_OUT = "locked_out"


class IssuedChallenge(NamedTuple):
    pending_id: str
    code: str
    expires_at: object


class ChallengeResult(NamedTuple):
    outcome: ChallengeOutcome
    account_id: Optional[int] = None
    session_token: Optional[str] = None
    attempts_remaining: int = 0
    password_expired: bool = False


def generate_code() -> str:
    # uniform over 100000..999999
    return str(100000 + secrets.randbelow(900000))


def issue_challenge(account_id: int, client_ip=None, store=None) -> IssuedChallenge:
    """
    Creates a pending challenge and emails the code. If delivery fails the
    challenge is dropped and EmailDeliveryError propagates.
    """
    store = store or get_challenge_store()
    account = db.session.get(Account, account_id)
    if account is None:
        raise LookupError(f"Account {account_id} does not exist")

    now = clock.utcnow()
    ttl = current_app.config.get("OTP_TTL_SECONDS", 300)
    code = generate_code()
    challenge = PendingChallenge(
        pending_id=new_token(),
        account_id=account.id,
        code_hash=hash_token(code),
        issued_at=now,
        expires_at=now + timedelta(seconds=ttl),
    )

    # A new login attempt supersedes any older pending one
    store.discard_for_account(account.id)
    store.put(challenge)

    try:
        deliver_2fa_code(account.email, code)
    except Exception:
        store.discard(challenge.pending_id)
        raise

    with atomic():
        log_event("2FA Code Sent", account.id, "Verification code emailed", ip=client_ip, commit=False)

    return IssuedChallenge(challenge.pending_id, code, challenge.expires_at)


def _lock_after_failed_challenge(account_id: int, client_ip=None) -> None:
    minutes = current_app.config.get("OTP_LOCKOUT_MINUTES", 5)
    until = clock.utcnow() + timedelta(minutes=minutes)
    with atomic():
        # Never shortens a longer lock that is already in place
        Account.query.filter_by(id=account_id).update(
            {
                Account.lockout_until: case(
                    (Account.lockout_until > until, Account.lockout_until),
                    else_=until,
                ),
                Account.failed_login_count: 0,
            },
            synchronize_session=False,
        )
        log_event("Account Locked", account_id, "Too many failed 2FA attempts", ip=client_ip, commit=False)
    current_app.logger.warning("Account %s locked for %s minutes (2FA stage)", account_id, minutes)


def _password_expired(account: Account, now) -> bool:
    max_age_days = current_app.config.get("PASSWORD_MAX_AGE_DAYS", 90)
    if not max_age_days:
        return False
    if account.last_password_change is None:
        return True
    return now - account.last_password_change > timedelta(days=max_age_days)


def _complete_login(challenge: PendingChallenge, client_ip, user_agent) -> ChallengeResult:
    now = clock.utcnow()
    with atomic():
        account = Account.query.filter_by(id=challenge.account_id).with_for_update().one()
        account.failed_login_count = 0
        account.lockout_until = None
        account.last_login_at = now
        log_event("Successful 2FA Verification", account.id, account.email, ip=client_ip, commit=False)
        expired = _password_expired(account, now)

    token = create_session(challenge.account_id, client_ip, user_agent)
    return ChallengeResult(
        ChallengeOutcome.SUCCESS,
        account_id=challenge.account_id,
        session_token=token,
        password_expired=expired,
    )


def verify_challenge(pending_id, submitted_code, client_ip=None, user_agent=None, store=None) -> ChallengeResult:
    store = store or get_challenge_store()
    max_attempts = current_app.config.get("OTP_MAX_ATTEMPTS", 3)

    challenge = store.get(pending_id)
    if challenge is None:
        return ChallengeResult(ChallengeOutcome.EXPIRED)

    if clock.utcnow() > challenge.expires_at:
        store.discard(pending_id)
        with atomic():
            log_event("2FA Code Expired", challenge.account_id, "Expired code submitted", ip=client_ip, commit=False)
        return ChallengeResult(ChallengeOutcome.EXPIRED, challenge.account_id)

    code = (submitted_code or "").strip()
    if token_matches(code, challenge.code_hash):
        # Single use: only the request that removes the record proceeds
        if store.discard(pending_id) is None:
            return ChallengeResult(ChallengeOutcome.EXPIRED, challenge.account_id)
        return _complete_login(challenge, client_ip, user_agent)

    attempts = store.record_failure(pending_id)
    if attempts == 0:
        return ChallengeResult(ChallengeOutcome.EXPIRED, challenge.account_id)

    with atomic():
        log_event(
            "Failed 2FA Attempt",
            challenge.account_id,
            f"Attempt {attempts} of {max_attempts}",
            ip=client_ip,
            commit=False,
        )

    if attempts >= max_attempts:
        # only the request that removes the record applies the lock
        if store.discard(pending_id) is None:
            return ChallengeResult(ChallengeOutcome.EXPIRED, challenge.account_id)
        _lock_after_failed_challenge(challenge.account_id, client_ip)
        return ChallengeResult(ChallengeOutcome.LOCKED_OUT, challenge.account_id)

    return ChallengeResult(
        ChallengeOutcome.INVALID,
        challenge.account_id,
        attempts_remaining=max_attempts - attempts,
    )
