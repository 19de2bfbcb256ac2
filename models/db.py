from contextlib import contextmanager

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.exc import DisconnectionError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from utils.errors import StorageUnavailable

db = SQLAlchemy()

_TRANSIENT_DB_ERRORS = (OperationalError, DisconnectionError, PoolTimeoutError)


@contextmanager
def atomic():
    """
    Commit everything done inside the block, or nothing.
    Connection-level failures surface as StorageUnavailable.
    """
    try:
        yield db.session
        db.session.commit()
    except _TRANSIENT_DB_ERRORS as exc:
        db.session.rollback()
        raise StorageUnavailable() from exc
    except Exception:
        db.session.rollback()
        raise
