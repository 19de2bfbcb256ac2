from flask import Blueprint, current_app, g, jsonify, request, session
from sqlalchemy.exc import IntegrityError

from models import atomic, db
from models.account import Account
from security.bot_check import verify_bot_token
from security.credentials import GateOutcome, verify_credentials
from security.csrf import clear_csrf_token, issue_csrf_token
from security.otp import ChallengeOutcome, issue_challenge, verify_challenge
from security.password import hash_password
from security.password_policy import (
    PasswordOutcome,
    change_password as change_account_password,
    password_strength,
    validate_password,
)
from security.pii import decrypt_nric, encrypt_nric, mask_nric, nric_lookup_hash
from security.reset import redeem_reset, request_reset
from security.session import (
    get_active_sessions,
    has_concurrent_logins,
    invalidate_session,
    session_time_remaining,
)
from utils import clock
from utils.audit import client_ip, log_event
from utils.auth_context import (
    PENDING_CHALLENGE_KEY,
    login_required,
    start_authenticated_session,
)
from utils.errors import AuthError, PolicyRejection, ValidationError
from utils.validation import (
    GENDERS,
    is_valid_email,
    is_valid_gender,
    is_valid_name,
    is_valid_nric,
    is_valid_who_am_i,
    normalize_email,
    parse_date_of_birth,
)

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _field(data: dict, name: str, required=True) -> str:
    value = data.get(name)
    if value is None or value == "":
        if required:
            raise ValidationError(f"{name} is required", field=name)
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string", field=name)
    return value


def _user_agent() -> str:
    return request.headers.get("User-Agent", "")


def _require_human(data: dict) -> None:
    result = verify_bot_token(data.get("bot_token") or "", client_ip())
    if not result.passed:
        raise PolicyRejection("Bot verification failed", status_code=400, code="BOT_CHECK_FAILED")


def _profile_fields(data: dict) -> dict:
    first_name = _field(data, "first_name").strip()
    last_name = _field(data, "last_name").strip()
    if not is_valid_name(first_name):
        raise ValidationError("First name can only contain letters and spaces (max 50)", field="first_name")
    if not is_valid_name(last_name):
        raise ValidationError("Last name can only contain letters and spaces (max 50)", field="last_name")

    gender = _field(data, "gender")
    if not is_valid_gender(gender):
        raise ValidationError(f"Gender must be one of: {', '.join(GENDERS)}", field="gender")

    nric = _field(data, "nric")
    if not is_valid_nric(nric):
        raise ValidationError("Invalid NRIC format (e.g., S1234567D)", field="nric")

    date_of_birth = parse_date_of_birth(_field(data, "date_of_birth"))
    if date_of_birth is None:
        raise ValidationError("Date of birth must be a past date (YYYY-MM-DD)", field="date_of_birth")

    who_am_i = _field(data, "who_am_i")
    if not is_valid_who_am_i(who_am_i):
        raise ValidationError("Who Am I cannot exceed 1000 characters or contain < or >", field="who_am_i")

    return {
        "first_name": first_name,
        "last_name": last_name,
        "gender": gender,
        "date_of_birth": date_of_birth,
        "who_am_i": who_am_i,
        "nric": nric,
    }


def _raise_for_password_outcome(result) -> None:
    outcome = result.outcome
    if outcome == PasswordOutcome.OK:
        return
    if outcome == PasswordOutcome.WRONG_CURRENT:
        raise PolicyRejection("Current password is incorrect.", status_code=401, code="WRONG_CURRENT_PASSWORD")
    if outcome == PasswordOutcome.COOLDOWN:
        raise PolicyRejection(
            f"Please wait {result.minutes_left} more minutes before changing your password again.",
            status_code=429,
            code="PASSWORD_COOLDOWN",
            retry_after=result.minutes_left * 60,
        )
    if outcome == PasswordOutcome.SAME_AS_CURRENT:
        raise PolicyRejection("New password cannot be the same as your current password.", status_code=400, code="SAME_AS_CURRENT")
    if outcome == PasswordOutcome.REUSES_HISTORY:
        raise PolicyRejection("You cannot reuse your recent passwords.", status_code=400, code="PASSWORD_REUSED")
    if outcome == PasswordOutcome.TOO_WEAK:
        raise PolicyRejection("Password does not meet policy", status_code=400, code="WEAK_PASSWORD", details=list(result.errors))
    if outcome == PasswordOutcome.INVALID_OR_EXPIRED:
        raise PolicyRejection("Invalid or expired token", status_code=400, code="INVALID_OR_EXPIRED_TOKEN")
    raise AuthError()


@auth_bp.post("/register")
def register():
    data = _json_body()
    _require_human(data)

    email = normalize_email(_field(data, "email"))
    password = _field(data, "password")
    confirm_password = _field(data, "confirm_password")

    if not is_valid_email(email):
        raise ValidationError("Invalid email", field="email")
    if password != confirm_password:
        raise ValidationError("Password and Confirm Password do not match", field="confirm_password")
    profile = _profile_fields(data)
    valid, errors = validate_password(password)
    if not valid:
        raise PolicyRejection("Password does not meet policy", status_code=400, code="WEAK_PASSWORD", details=errors)

    nric = profile.pop("nric")
    nric_lookup = nric_lookup_hash(nric)
    with atomic():
        email_taken = Account.query.filter_by(email=email).first() is not None
        nric_taken = not email_taken and Account.query.filter_by(nric_lookup=nric_lookup).first() is not None
        if email_taken:
            log_event("Registration Failed - Email Exists", None, email, commit=False)
        elif nric_taken:
            log_event("Registration Failed - NRIC Exists", None, email, commit=False)

    if email_taken:
        raise AuthError("Email already registered", status_code=409, code="EMAIL_EXISTS")
    if nric_taken:
        raise AuthError("NRIC already registered", status_code=409, code="NRIC_EXISTS")

    now = clock.utcnow()
    try:
        with atomic():
            account = Account(
                email=email,
                password_hash=hash_password(password),
                nric_encrypted=encrypt_nric(nric),
                nric_lookup=nric_lookup,
                last_password_change=now,
                created_at=now,
                **profile,
            )
            db.session.add(account)
            db.session.flush()
            log_event("Registration", account.id, email, commit=False)
    except IntegrityError:
        # lost a race with a concurrent registration
        raise AuthError("Email or NRIC already registered", status_code=409, code="ALREADY_REGISTERED")

    return jsonify(message="Registered successfully"), 201


@auth_bp.post("/login")
def login():
    data = _json_body()
    _require_human(data)

    email = _field(data, "email")
    password = _field(data, "password")

    result = verify_credentials(email, password, client_ip())

    if result.outcome == GateOutcome.LOCKED:
        raise PolicyRejection(
            f"Account is locked. Try again in {result.remaining_minutes} minutes.",
            status_code=429,
            code="ACCOUNT_LOCKED",
            retry_after=result.remaining_minutes * 60,
        )
    if result.outcome == GateOutcome.REJECTED:
        raise AuthError("Invalid email or password", status_code=401, code="INVALID_CREDENTIALS")

    # Password is right; the account is not signed in until the code is verified
    session.clear()
    issued = issue_challenge(result.account_id, client_ip())
    session[PENDING_CHALLENGE_KEY] = issued.pending_id

    return jsonify(
        message="Verification code sent",
        requires_2fa=True,
        expires_at=issued.expires_at.isoformat(),
    ), 200


@auth_bp.post("/verify-2fa")
def verify_2fa():
    data = _json_body()
    pending_id = session.get(PENDING_CHALLENGE_KEY)
    if not pending_id:
        raise PolicyRejection("No login in progress. Please login again.", status_code=401, code="LOGIN_REQUIRED")

    code = _field(data, "code")
    result = verify_challenge(pending_id, code, client_ip(), _user_agent())

    if result.outcome == ChallengeOutcome.SUCCESS:
        start_authenticated_session(result.account_id, result.session_token)
        resp = jsonify(message="Login OK", password_expired=result.password_expired)
        return issue_csrf_token(resp), 200

    if result.outcome == ChallengeOutcome.EXPIRED:
        session.pop(PENDING_CHALLENGE_KEY, None)
        raise PolicyRejection("The code has expired. Please login again.", status_code=401, code="CODE_EXPIRED")

    if result.outcome == ChallengeOutcome.LOCKED_OUT:
        # restart the whole login flow
        session.clear()
        minutes = current_app.config.get("OTP_LOCKOUT_MINUTES", 5)
        raise PolicyRejection(
            f"Too many failed attempts. Account locked for {minutes} minutes.",
            status_code=429,
            code="ACCOUNT_LOCKED",
            retry_after=minutes * 60,
        )

    raise PolicyRejection(
        f"Invalid verification code. {result.attempts_remaining} attempts remaining.",
        status_code=401,
        code="CODE_INVALID",
        details={"attempts_remaining": result.attempts_remaining},
    )


@auth_bp.get("/session")
def session_status():
    if g.member is None:
        reason = "expired_or_concurrent" if g.session_invalidated else "no_session"
        return jsonify(valid=False, reason=reason), 200

    return jsonify(
        valid=True,
        time_remaining=session_time_remaining(g.member.id, g.session_token),
        last_activity=clock.utcnow().isoformat(),
    ), 200


@auth_bp.get("/me")
@login_required
def me():
    member = g.member
    return jsonify(
        id=member.id,
        email=member.email,
        last_login_at=member.last_login_at.isoformat() if member.last_login_at else None,
        last_password_change=member.last_password_change.isoformat(),
        first_name=member.first_name,
        last_name=member.last_name,
        gender=member.gender,
        date_of_birth=member.date_of_birth.isoformat() if member.date_of_birth else None,
        who_am_i=member.who_am_i,
        # never leaves the server unmasked
        nric=mask_nric(decrypt_nric(member.nric_encrypted)) if member.nric_encrypted else None,
    ), 200


@auth_bp.get("/sessions")
@login_required
def list_sessions():
    rows = get_active_sessions(g.member.id)
    current_hash = g.member.current_session_hash
    return jsonify(
        concurrent=has_concurrent_logins(g.member.id),
        sessions=[
            {
                "created_at": s.created_at.isoformat(),
                "last_activity_at": s.last_activity_at.isoformat(),
                "expires_at": s.expires_at.isoformat(),
                "ip": s.ip,
                "user_agent": s.user_agent,
                "current": s.token_hash == current_hash,
            }
            for s in rows
        ],
    ), 200


@auth_bp.post("/logout")
@login_required
def logout():
    member_id, token = g.member.id, g.session_token
    # the cookie is dropped even if the storage calls below fail
    session.clear()

    invalidate_session(member_id, token)
    with atomic():
        log_event("Logout", member_id, "User initiated logout", commit=False)

    resp = jsonify(message="Logged out")
    return clear_csrf_token(resp), 200


@auth_bp.post("/change-password")
@login_required
def change_password():
    data = _json_body()
    current_password = _field(data, "current_password")
    new_password = _field(data, "new_password")

    result = change_account_password(g.member.id, current_password, new_password, client_ip())
    _raise_for_password_outcome(result)
    return jsonify(message="Password changed successfully"), 200


@auth_bp.post("/password-strength")
def check_password_strength():
    data = _json_body()
    password = data.get("password") or ""
    return jsonify(password_strength(password)), 200


@auth_bp.post("/forgot-password")
def forgot_password():
    data = _json_body()
    email = _field(data, "email")

    request_reset(email, client_ip())
    # Identical answer for known and unknown emails
    return jsonify(message="If an account exists, a reset link has been sent."), 200


@auth_bp.post("/reset-password")
def reset_password():
    data = _json_body()
    token = _field(data, "token")
    new_password = _field(data, "new_password")

    result = redeem_reset(token, new_password, client_ip())
    _raise_for_password_outcome(result)

    session.clear()
    return jsonify(message="Password has been reset. Please login."), 200
