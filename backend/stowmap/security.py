from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import jwt, JWTError
from passlib.context import CryptContext
from .config import get_settings
from .errors import Unauthorized


pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")
settings = get_settings()

ALGORITHM = "HS256"
ACCESS = "access"
REFRESH = "refresh"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    return pwd_context.verify(password, hashed)


def create_token(data: dict, expires_delta: timedelta) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=ALGORITHM)


def issue_token(user_id: int, token_type: str, expires_delta: timedelta, org_id: Optional[int] = None) -> str:
    claims = {"sub": str(user_id), "type": token_type}
    if org_id is not None:
        claims["org"] = org_id
    return create_token(claims, expires_delta)


def decode_token(token: str, expected_type: Optional[str] = None) -> dict:
    """Verify signature and expiry; tokens without a ``type`` claim count as access tokens."""
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[ALGORITHM])
    except JWTError as exc:
        raise Unauthorized("Invalid token") from exc
    if expected_type and payload.get("type", ACCESS) != expected_type:
        raise Unauthorized("Invalid token type")
    return payload


def token_user_id(payload: dict) -> int:
    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError) as exc:
        raise Unauthorized("Invalid token") from exc
