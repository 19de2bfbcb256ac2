import hashlib
import hmac
import secrets


def new_token() -> str:
    # 256 bits from the OS CSPRNG
    return secrets.token_urlsafe(32)


def hash_token(token: str) -> str:
    # SHA-256 is fine for hashing random high-entropy tokens
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def token_matches(raw_token: str, stored_hash: str) -> bool:
    if not raw_token or not stored_hash:
        return False
    return hmac.compare_digest(hash_token(raw_token), stored_hash)
