from .db import db, atomic
from .account import Account
from .audit_log import AuditLog
from .session import Session
from .password_history import PasswordHistory
