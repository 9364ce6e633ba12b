from __future__ import annotations
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from .settings import settings

logging.getLogger('passlib').setLevel(logging.ERROR)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.bcrypt_rounds)

# bcrypt only looks at the first 72 bytes
_BCRYPT_MAX_BYTES = 72


def _clip(password: str) -> str:
	password_bytes = password.encode('utf-8')
	if len(password_bytes) > _BCRYPT_MAX_BYTES:
		password_bytes = password_bytes[:_BCRYPT_MAX_BYTES]
	return password_bytes.decode('utf-8', errors='ignore')


def hash_password(password: str) -> str:
	return pwd_context.hash(_clip(password))


def verify_password(plain_password: str, hashed_password: str) -> bool:
	if not plain_password or not hashed_password:
		return False
	try:
		return pwd_context.verify(_clip(plain_password), hashed_password)
	except ValueError:
		# Malformed hash in storage
		return False


def _resolve_expiry(expires_delta: Optional[timedelta]) -> datetime:
	"""Return the JWT expiry timestamp.

	Falls back to the configured session length, and caps the result at the
	largest representable datetime instead of overflowing.
	"""
	delta = expires_delta or timedelta(days=settings.session_days)
	now = datetime.now(timezone.utc)
	try:
		return now + delta
	except OverflowError:
		return datetime.max.replace(tzinfo=timezone.utc)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
	to_encode = data.copy()
	expire = _resolve_expiry(expires_delta)
	to_encode.update({"exp": expire})
	return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
	"""Decode and verify a session token. Expired or tampered tokens give None."""
	try:
		return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
	except JWTError:
		return None


def token_expiry(payload: Dict[str, Any]) -> Optional[datetime]:
	exp = payload.get("exp")
	if exp is None:
		return None
	return datetime.fromtimestamp(int(exp), tz=timezone.utc)
