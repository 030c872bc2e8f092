# Password hashing, bearer tokens and input sanitization

import html
import re
from datetime import timedelta
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from .config import JWT_SECRET, JWT_ALGORITHM, JWT_EXPIRE_HOURS, now_utc

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# ---------------------------------------------------------------------------
# Passwords / tokens
# ---------------------------------------------------------------------------
def hash_password(password: str) -> str:
    if len(password.encode("utf-8")) > 72:
        raise ValueError("Password cannot exceed 72 bytes")
    return pwd_context.hash(password)

def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)

def create_access_token(data: dict, expires_hours: Optional[int] = None) -> str:
    to_encode = data.copy()
    to_encode["exp"] = now_utc() + timedelta(hours=expires_hours or JWT_EXPIRE_HOURS)
    return jwt.encode(to_encode, JWT_SECRET, algorithm=JWT_ALGORITHM)

def decode_access_token(token: str) -> Optional[dict]:
    """Return the token's claims, or None when it is malformed, forged or expired."""
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except JWTError:
        return None

_token_blacklist: set = set()

def revoke_token(token: str) -> None:
    _token_blacklist.add(token)
    # Prevent unbounded growth; expired tokens fail decoding anyway
    if len(_token_blacklist) > 10000:
        _token_blacklist.clear()

def is_revoked(token: str) -> bool:
    return token in _token_blacklist

# ---------------------------------------------------------------------------
# Input sanitization
# ---------------------------------------------------------------------------
_ID_STRIP = re.compile(r"[^A-Za-z0-9_-]")
_EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
_DANGEROUS_SCHEMES = ("javascript:", "data:", "vbscript:")

def sanitize_text(value, max_length: int = 10000) -> str:
    """HTML-escape free text before it is stored and shown to other staff."""
    if not isinstance(value, str):
        return ""
    return html.escape(value[:max_length], quote=True)

def sanitize_id(value, max_length: int = 100) -> str:
    if not isinstance(value, str):
        return ""
    return _ID_STRIP.sub("", value)[:max_length]

def sanitize_email(value) -> Optional[str]:
    if not isinstance(value, str):
        return None
    email = value.strip().lower()
    if len(email) > 254 or not _EMAIL_RE.match(email):
        return None
    return email

def sanitize_url(value) -> Optional[str]:
    if not isinstance(value, str):
        return None
    url = value.strip()
    if url.lower().startswith(_DANGEROUS_SCHEMES):
        return None
    if url.startswith(("http://", "https://", "/")):
        return url[:2048]
    return None

def sanitize_coordinate(lat, lng) -> Optional[dict]:
    try:
        lat_f, lng_f = float(lat), float(lng)
    except (TypeError, ValueError):
        return None
    if lat_f != lat_f or lng_f != lng_f:  # NaN
        return None
    if not (-90 <= lat_f <= 90 and -180 <= lng_f <= 180):
        return None
    return {"lat": lat_f, "lng": lng_f}
