from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel

from config import get_settings
from errors import Forbidden, InvalidToken, MissingToken, ValidationError
from schemas import canonical_id

settings = get_settings()

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
# bcrypt only reads the first 72 bytes of a secret
MAX_PASSWORD_BYTES = 72
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


class Claims(BaseModel):
    user_id: str
    is_admin: bool = False
    exp: datetime


# Passwords

def password_too_long(password: str) -> bool:
    return len(password.encode("utf-8")) > MAX_PASSWORD_BYTES


def hash_password(password: str) -> str:
    if password_too_long(password):
        raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    if not hashed or password_too_long(password):
        return False
    try:
        return pwd_context.verify(password, hashed)
    except ValueError:
        # malformed hash in storage
        return False


# Tokens

def issue_token(user_id: str, is_admin: bool, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode = {"sub": user_id, "is_admin": bool(is_admin), "exp": expire}
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def verify_token(token: Optional[str]) -> Claims:
    if not token:
        raise MissingToken()
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        raise InvalidToken()
    if not payload.get("sub") or "exp" not in payload:
        raise InvalidToken()
    try:
        user_id = canonical_id(payload["sub"])
    except ValidationError:
        raise InvalidToken()
    return Claims(
        user_id=user_id,
        is_admin=payload.get("is_admin") is True,
        exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
    )


# Access guard

async def require_auth(token: Optional[str] = Depends(oauth2_scheme)) -> Claims:
    return verify_token(token)


async def require_admin(claims: Claims = Depends(require_auth)) -> Claims:
    if not claims.is_admin:
        raise Forbidden()
    return claims
