import re
from datetime import date

from utils import clock

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_NRIC_RE = re.compile(r"^[STFG]\d{7}[A-Z]$")
_NAME_RE = re.compile(r"^[a-zA-Z\s]+$")

GENDERS = ("Male", "Female", "Other")
NAME_MAX_LENGTH = 50
WHO_AM_I_MAX_LENGTH = 1000


def normalize_email(value: str) -> str:
    return (value or "").strip().lower()


def is_valid_email(email: str) -> bool:
    return isinstance(email, str) and len(email) <= 255 and bool(_EMAIL_RE.match(email))


def normalize_nric(value: str) -> str:
    return (value or "").strip().upper()


def is_valid_nric(nric: str) -> bool:
    # S1234567D: S/T/F/G, seven digits, a check letter
    return isinstance(nric, str) and bool(_NRIC_RE.match(normalize_nric(nric)))


def is_valid_name(name: str) -> bool:
    if not isinstance(name, str):
        return False
    name = name.strip()
    return 0 < len(name) <= NAME_MAX_LENGTH and bool(_NAME_RE.match(name))


def is_valid_gender(gender: str) -> bool:
    return gender in GENDERS


def parse_date_of_birth(value: str, today=None):
    """ISO date strictly in the past, or None."""
    if not isinstance(value, str):
        return None
    try:
        born = date.fromisoformat(value.strip())
    except ValueError:
        return None
    today = today or clock.utcnow().date()
    return born if born < today else None


def is_valid_who_am_i(text: str) -> bool:
    # Markup is refused outright rather than escaped
    if not isinstance(text, str) or not text.strip():
        return False
    return len(text) <= WHO_AM_I_MAX_LENGTH and "<" not in text and ">" not in text
