from flask import has_request_context, request

from models import db
from models.audit_log import AuditLog


def client_ip():
    if not has_request_context():
        return None
    # ProxyFix rewrites remote_addr when the app sits behind trusted proxies
    return request.remote_addr


def log_event(action: str, account_id=None, detail=None, ip=None, commit=True):
    """
    Append an audit row. With commit=False the row joins the caller's
    transaction, so the event and the state change land together or not at all.
    """
    user_agent = request.headers.get("User-Agent", "") if has_request_context() else ""

    row = AuditLog(
        account_id=account_id,
        action=action,
        detail=detail[:500] if detail else None,
        ip=ip or client_ip(),
        user_agent=user_agent[:255] if user_agent else None,
    )
    db.session.add(row)
    if commit:
        db.session.commit()
    return row
