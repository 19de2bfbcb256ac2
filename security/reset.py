from datetime import timedelta
from urllib.parse import urlencode

from flask import current_app

from models import atomic
from models.account import Account
from models.session import Session
from security.password_policy import (
    PasswordChangeResult,
    PasswordOutcome,
    apply_new_password,
    check_reuse,
    validate_password,
)
from security.tokens import hash_token, new_token
from utils import clock
from utils.audit import log_event
from utils.emailer import deliver_reset_link
from utils.validation import normalize_email


def build_reset_link(token: str) -> str:
    origin = current_app.config["TRUSTED_ORIGIN"].rstrip("/")
    path = current_app.config.get("RESET_PATH", "/reset-password")
    return f"{origin}{path}?{urlencode({'token': token})}"


def request_reset(email: str, client_ip=None) -> None:
    """
    Same (empty) answer whether or not the email belongs to an account.
    Only the side effects differ.
    """
    email = normalize_email(email)
    ttl = current_app.config.get("RESET_TOKEN_TTL_SECONDS", 3600)

    with atomic():
        account = Account.query.filter_by(email=email).with_for_update().first()
        if account is None:
            log_event("Reset Requested - Unknown Email", None, email, ip=client_ip, commit=False)
            return None

        token = new_token()
        # a newer token silently replaces any earlier one
        account.reset_token_hash = hash_token(token)
        account.reset_token_expires_at = clock.utcnow() + timedelta(seconds=ttl)
        account_id, account_email = account.id, account.email

    deliver_reset_link(account_email, build_reset_link(token))

    with atomic():
        log_event("Reset Link Sent", account_id, f"Sent to {account_email}", ip=client_ip, commit=False)
    return None


def redeem_reset(token: str, new_password: str, client_ip=None) -> PasswordChangeResult:
    if not token:
        return PasswordChangeResult(PasswordOutcome.INVALID_OR_EXPIRED)

    history_count = current_app.config.get("RESET_HISTORY_COUNT", 2)
    now = clock.utcnow()

    token_hash = hash_token(token)
    unexpired = (Account.reset_token_hash == token_hash, Account.reset_token_expires_at > now)

    with atomic():
        account = (
            Account.query
            .filter(*unexpired)
            .with_for_update()
            .first()
        )
        if account is None:
            log_event("Reset Failed", None, "Invalid or expired reset token", ip=client_ip, commit=False)
            return PasswordChangeResult(PasswordOutcome.INVALID_OR_EXPIRED)

        valid, errors = validate_password(new_password)
        if not valid:
            return PasswordChangeResult(PasswordOutcome.TOO_WEAK, errors=tuple(errors))

        reused = check_reuse(account, new_password, history_count=history_count)
        if reused:
            return PasswordChangeResult(reused)

        # the token is consumed in the same UPDATE that swaps the hash
        swapped = apply_new_password(
            account,
            new_password,
            now=now,
            criteria=unexpired,
            values={Account.reset_token_hash: None, Account.reset_token_expires_at: None},
        )
        if not swapped:
            log_event("Reset Failed", account.id, "Reset token already used", ip=client_ip, commit=False)
            return PasswordChangeResult(PasswordOutcome.INVALID_OR_EXPIRED)

        # every device signs in again with the new password
        Session.query.filter_by(account_id=account.id, active=True).update(
            {Session.active: False}, synchronize_session=False
        )
        account.current_session_hash = None
        account.session_created_at = None

        log_event("Password Reset", account.id, "Password reset via emailed token", ip=client_ip, commit=False)

    return PasswordChangeResult(PasswordOutcome.OK)
