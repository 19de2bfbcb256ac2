from functools import wraps

from flask import g, session

from models import db
from models.account import Account
from security.session import validate_session
from utils.errors import AuthError

MEMBER_ID_KEY = "member_id"
SESSION_TOKEN_KEY = "session_token"
PENDING_CHALLENGE_KEY = "pending_challenge"


class AuthenticationRequired(AuthError):
    status_code = 401
    code = "UNAUTHENTICATED"
    message = "Authentication required"


def start_authenticated_session(account_id: int, raw_token: str) -> None:
    # Fresh cookie contents on every login
    session.clear()
    session[MEMBER_ID_KEY] = account_id
    session[SESSION_TOKEN_KEY] = raw_token


def load_current_member():
    g.member = None
    g.session_token = None
    g.session_invalidated = False

    member_id = session.get(MEMBER_ID_KEY)
    raw_token = session.get(SESSION_TOKEN_KEY)
    if member_id is None and raw_token is None:
        return

    if not validate_session(member_id, raw_token):
        # Never partially trust a stale token
        session.clear()
        g.session_invalidated = True
        return

    g.member = db.session.get(Account, member_id)
    g.session_token = raw_token


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "member", None) is None:
            raise AuthenticationRequired()
        return fn(*args, **kwargs)
    return wrapper
