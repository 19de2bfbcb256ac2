import base64
import hashlib
import hmac

from cryptography.fernet import Fernet, InvalidToken
from flask import current_app

from utils.validation import normalize_nric


def _derive_fernet_key(raw: str) -> bytes:
    # A proper Fernet key is used as-is, anything else is stretched to one
    raw_bytes = raw.strip().encode("utf-8")
    try:
        decoded = base64.urlsafe_b64decode(raw_bytes)
    except (TypeError, ValueError):
        decoded = b""
    if len(decoded) == 32:
        return raw_bytes

    digest = hashlib.sha256(raw_bytes).digest()
    return base64.urlsafe_b64encode(digest)


def _secret() -> str:
    return current_app.config.get("NRIC_ENCRYPTION_KEY") or current_app.config["SECRET_KEY"]


def _fernet() -> Fernet:
    return Fernet(_derive_fernet_key(_secret()))


def encrypt_nric(nric: str) -> str:
    return _fernet().encrypt(normalize_nric(nric).encode("utf-8")).decode("ascii")


def decrypt_nric(ciphertext: str) -> str:
    """Empty string when the value cannot be decrypted with the current key."""
    if not ciphertext:
        return ""
    try:
        return _fernet().decrypt(ciphertext.encode("ascii")).decode("utf-8")
    except InvalidToken:
        current_app.logger.warning("Stored NRIC could not be decrypted with the configured key")
        return ""


def nric_lookup_hash(nric: str) -> str:
    """
    Fernet output is randomized, so duplicate detection runs on a keyed
    digest of the normalized NRIC instead of the ciphertext.
    """
    key = hashlib.sha256(b"nric-lookup:" + _secret().encode("utf-8")).digest()
    return hmac.new(key, normalize_nric(nric).encode("utf-8"), hashlib.sha256).hexdigest()


def mask_nric(nric: str) -> str:
    # S1234567D -> S****567D
    if not nric or len(nric) < 9:
        return "********"
    return nric[0] + "****" + nric[-4:]
