import math
import re
from datetime import timedelta
from enum import Enum
from typing import List, NamedTuple, Optional, Tuple

from flask import current_app, has_app_context

from models import atomic, db
from models.account import Account
from models.password_history import PasswordHistory
from security.password import BCRYPT_MAX_BYTES, hash_password, verify_password
from utils import clock
from utils.audit import log_event

ALLOWED_SYMBOLS = "@$!%*?&"

_UPPER = re.compile(r"[A-Z]")
_LOWER = re.compile(r"[a-z]")
_DIGIT = re.compile(r"\d")
_SYMBOL = re.compile("[" + re.escape(ALLOWED_SYMBOLS) + "]")

_DEFAULTS = {
    "PASSWORD_MIN_LEN": 12,
    "PASSWORD_MAX_LEN": 64,
    "PASSWORD_CHANGE_COOLDOWN_MINUTES": 5,
    "RESET_HISTORY_COUNT": 2,
}


def _cfg(name: str):
    if not has_app_context():
        return _DEFAULTS[name]
    return current_app.config.get(name, _DEFAULTS[name])


class PasswordOutcome(str, Enum):
    OK = "ok"
    WRONG_CURRENT = "wrong_current"
    COOLDOWN = "cooldown"
    SAME_AS_CURRENT = "same_as_current"
    REUSES_HISTORY = "reuses_history"
    TOO_WEAK = "too_weak"
    INVALID_OR_EXPIRED = "invalid_or_expired"


class PasswordChangeResult(NamedTuple):
    outcome: PasswordOutcome
    minutes_left: int = 0
    errors: Tuple[str, ...] = ()


def validate_password(pw: str) -> Tuple[bool, List[str]]:
    errors: List[str] = []

    if not isinstance(pw, str):
        return False, ["Password must be a string"]

    min_len = int(_cfg("PASSWORD_MIN_LEN"))
    max_len = int(_cfg("PASSWORD_MAX_LEN"))

    if len(pw) < min_len:
        errors.append(f"Password must be at least {min_len} characters")
    if len(pw) > max_len or len(pw.encode("utf-8")) > BCRYPT_MAX_BYTES:
        errors.append(f"Password must be at most {max_len} characters")

    if not _UPPER.search(pw):
        errors.append("Password must include at least 1 uppercase letter")
    if not _LOWER.search(pw):
        errors.append("Password must include at least 1 lowercase letter")
    if not _DIGIT.search(pw):
        errors.append("Password must include at least 1 number")
    if not _SYMBOL.search(pw):
        errors.append(f"Password must include at least 1 symbol from {ALLOWED_SYMBOLS}")

    return (len(errors) == 0), errors


def password_strength(pw: str) -> dict:
    if not isinstance(pw, str):
        return {
            "score": 0,
            "valid": False,
            "feedback": ["Password must be a string"],
        }

    valid, errors = validate_password(pw)
    length = len(pw)
    min_len = int(_cfg("PASSWORD_MIN_LEN"))

    checks = (_UPPER, _LOWER, _DIGIT, _SYMBOL)
    variety = sum(1 for pat in checks if pat.search(pw))

    score = 0
    if length >= min_len:
        score += 1
    if length >= min_len + 4:
        score += 1
    if variety >= 3:
        score += 1
    if variety == len(checks) and length >= min_len:
        score += 1

    feedback: List[str] = []
    if not valid:
        feedback = errors
    else:
        if length < min_len + 4:
            feedback.append("Use a longer passphrase for extra strength")

    return {
        "score": min(score, 4),
        "valid": valid,
        "feedback": feedback,
    }


def recent_history(account_id: int, limit: int) -> List[PasswordHistory]:
    if limit <= 0:
        return []
    return (
        PasswordHistory.query
        .filter_by(account_id=account_id)
        .order_by(PasswordHistory.changed_at.desc(), PasswordHistory.id.desc())
        .limit(limit)
        .all()
    )


def check_reuse(account: Account, new_password: str, history_count: int) -> Optional[PasswordOutcome]:
    """
    Hashes are salted, so reuse is detected by verifying the new password
    against each forbidden hash rather than comparing hash strings.
    """
    if verify_password(new_password, account.password_hash):
        return PasswordOutcome.SAME_AS_CURRENT
    for row in recent_history(account.id, history_count):
        if verify_password(new_password, row.password_hash):
            return PasswordOutcome.REUSES_HISTORY
    return None


def cooldown_minutes_left(account: Account, now=None) -> int:
    cooldown = timedelta(minutes=int(_cfg("PASSWORD_CHANGE_COOLDOWN_MINUTES")))
    if account.last_password_change is None:
        return 0
    now = now or clock.utcnow()
    remaining = (account.last_password_change + cooldown - now).total_seconds()
    if remaining <= 0:
        return 0
    return math.ceil(remaining / 60)


def apply_new_password(account: Account, new_password: str, now=None, criteria=(), values=None) -> bool:
    """
    Caller owns the transaction. History always trails the live hash by one.

    The swap is a compare-and-set on the hash the caller checked against (plus
    any extra `criteria`), so of two concurrent changes only one lands.
    Returns False when another change got there first.
    """
    now = now or clock.utcnow()
    old_hash = account.password_hash

    changes = {
        Account.password_hash: hash_password(new_password),
        Account.last_password_change: now,
    }
    changes.update(values or {})

    swapped = (
        Account.query
        .filter(Account.id == account.id, Account.password_hash == old_hash, *criteria)
        .update(changes, synchronize_session=False)
    )
    if not swapped:
        return False

    db.session.add(PasswordHistory(
        account_id=account.id,
        password_hash=old_hash,
        changed_at=now,
    ))
    return True


def change_password(account_id: int, current_password: str, new_password: str, client_ip=None) -> PasswordChangeResult:
    with atomic():
        account = Account.query.filter_by(id=account_id).with_for_update().one()

        # Cooldown applies whether or not the credentials are right
        minutes_left = cooldown_minutes_left(account)
        if minutes_left:
            return PasswordChangeResult(PasswordOutcome.COOLDOWN, minutes_left=minutes_left)

        if not verify_password(current_password, account.password_hash):
            log_event("Password Change Failed", account.id, "Current password incorrect", ip=client_ip, commit=False)
            return PasswordChangeResult(PasswordOutcome.WRONG_CURRENT)

        valid, errors = validate_password(new_password)
        if not valid:
            return PasswordChangeResult(PasswordOutcome.TOO_WEAK, errors=tuple(errors))

        # current hash + the one prior version
        reused = check_reuse(account, new_password, history_count=1)
        if reused:
            return PasswordChangeResult(reused)

        if not apply_new_password(account, new_password):
            # a concurrent change landed first and started a new cooldown
            cooldown = int(_cfg("PASSWORD_CHANGE_COOLDOWN_MINUTES"))
            return PasswordChangeResult(PasswordOutcome.COOLDOWN, minutes_left=cooldown)

        log_event("Password Changed", account.id, "User successfully updated their password.", ip=client_ip, commit=False)

    return PasswordChangeResult(PasswordOutcome.OK)
