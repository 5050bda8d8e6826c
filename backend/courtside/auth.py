"""
Request identity: bearer JWTs minted by the external identity provider.

Only verification happens here. create_access_token exists for local tooling
and tests that need a token signed with the shared secret.
"""
import os
from datetime import datetime, timedelta
from typing import Optional

from dotenv import load_dotenv
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from courtside.errors import AuthenticationError

load_dotenv()

AUTH_SECRET_KEY = os.getenv("AUTH_SECRET_KEY", "change-me-in-production")
AUTH_ALGORITHM = os.getenv("AUTH_ALGORITHM", "HS256")

bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.utcnow() + (expires_delta or timedelta(hours=12))
    return jwt.encode({"sub": str(user_id), "exp": expire}, AUTH_SECRET_KEY, algorithm=AUTH_ALGORITHM)


def decode_actor_id(token: str) -> int:
    try:
        payload = jwt.decode(token, AUTH_SECRET_KEY, algorithms=[AUTH_ALGORITHM])
    except JWTError:
        raise AuthenticationError("Could not validate credentials", code="invalid_token")

    subject = payload.get("sub")
    try:
        return int(subject)
    except (TypeError, ValueError):
        raise AuthenticationError("Token has no user subject", code="invalid_token")


def get_current_actor_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> int:
    """FastAPI dependency: the authenticated user id, or 401."""
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Not authenticated")
    return decode_actor_id(credentials.credentials)
