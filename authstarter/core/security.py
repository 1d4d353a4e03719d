from datetime import datetime, timezone
from typing import Optional
import base64, hashlib, hmac, os, re

from passlib.context import CryptContext

from authstarter.core.errors import validation_error

# argon2id via argon2-cffi; pbkdf2 hashes from older deployments still verify and get flagged for rehash
pwd_ctx = CryptContext(schemes=["argon2", "pbkdf2_sha256"], deprecated="auto")

PASSWORD_POLICY_MESSAGE = (
    "Password must be at least 8 characters and include lowercase, uppercase, number, and symbol."
)
PASSWORD_RE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[^A-Za-z0-9]).{8,}$")


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(dt: Optional[datetime]) -> Optional[datetime]:
    """Return a timezone-aware UTC datetime. If naive, assume UTC."""
    if dt is None:
        return None
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def password_meets_policy(password: str) -> bool:
    return bool(PASSWORD_RE.match(password or ""))


def check_password_policy(password: str) -> None:
    if not password_meets_policy(password):
        raise validation_error(PASSWORD_POLICY_MESSAGE)


def hash_password(p: str) -> str:
    return pwd_ctx.hash(p)


def verify_password(plain: str, hashed: Optional[str]) -> bool:
    if not hashed:
        # unknown user: spend the same time as a real check
        pwd_ctx.dummy_verify()
        return False
    try:
        return pwd_ctx.verify(plain, hashed)
    except ValueError:
        # unrecognised or corrupt hash string
        return False


def password_needs_rehash(hashed: str) -> bool:
    return pwd_ctx.needs_update(hashed)


def random_token(n_bytes: int = 32) -> str:
    return base64.urlsafe_b64encode(os.urandom(n_bytes)).decode("utf-8").rstrip("=")


def hash_token(token: str) -> str:
    """SHA-256 hex digest; the only form in which bearer/single-use tokens are stored."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def token_matches(token: str, hashed: Optional[str]) -> bool:
    """Constant-time check of a raw token against a stored hash."""
    if not hashed:
        return False
    return hmac.compare_digest(hash_token(token).encode("utf-8"), hashed.encode("utf-8"))
